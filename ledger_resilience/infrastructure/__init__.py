"""Infrastructure layer: cache backends, job queues and monitoring."""
