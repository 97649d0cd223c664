"""
Health Check Routes

- GET /health           liveness; always 200 while the process serves requests
- GET /health/detailed  cache backend, circuits, queue depth and worker state
- GET /metrics          Prometheus exposition

A degraded cache backend is reported, not failed: the service keeps working
on its in-process fallback, so /health/detailed still answers 200 with
status "degraded".
"""

from fastapi import APIRouter, Response
from pydantic import BaseModel

from ledger_resilience.application.api.dependencies import ContainerDep
from ledger_resilience.core.config.constants import CircuitState
from ledger_resilience.webhooks.models import isoformat_z, utcnow

router = APIRouter(prefix="/health", tags=["Health"])
metrics_router = APIRouter(tags=["Monitoring"])


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


class DetailedHealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    redis_connected: bool
    cache: dict
    circuits: dict
    queue: dict


@router.get("", response_model=HealthResponse)
async def health_check(container: ContainerDep):
    return HealthResponse(
        status="healthy",
        timestamp=isoformat_z(utcnow()),
        version=container.settings.app.APP_VERSION,
    )


@router.get("/detailed", response_model=DetailedHealthResponse)
async def detailed_health(container: ContainerDep):
    cache = container.cache.health()
    circuits = {
        identifier: snapshot.to_dict()
        for identifier, snapshot in container.breaker.get_all_states().items()
    }
    depth = await container.worker.report_queue_depth()

    degraded = (
        container.cache_backend.kind != "redis"
        or cache["circuit"]["state"] != CircuitState.CLOSED.value
    )
    return DetailedHealthResponse(
        status="degraded" if degraded else "healthy",
        timestamp=isoformat_z(utcnow()),
        version=container.settings.app.APP_VERSION,
        environment=container.settings.app.ENVIRONMENT,
        redis_connected=container.redis_connected,
        cache=cache,
        circuits=circuits,
        queue={
            "kind": container.job_queue.kind,
            "depth": depth,
            "worker_running": container.worker.running,
        },
    )


@metrics_router.get("/metrics")
async def prometheus_metrics(container: ContainerDep):
    return Response(
        content=container.metrics.get_prometheus_metrics(),
        media_type=container.metrics.get_content_type(),
    )
