from ledger_resilience.application.api.routes.health import metrics_router
from ledger_resilience.application.api.routes.health import router as health_router
from ledger_resilience.application.api.routes.webhooks import router as webhooks_router

__all__ = ["health_router", "metrics_router", "webhooks_router"]
