"""Application layer: container wiring, HTTP app and application services."""
