"""
FastAPI Dependencies

Everything a route needs comes from the `Container` the lifespan stores on
`app.state.container`. Routes ask for it through the `Annotated` aliases at
the bottom of this module, so tests can swap a whole container per app.

The caller is identified by the X-User-ID header set by the upstream auth
gateway; requests without it are rejected with 401.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from ledger_resilience.application.container import Container
from ledger_resilience.core.config.constants import HEADER_USER_ID
from ledger_resilience.webhooks.service import WebhookService


def get_container(request: Request) -> Container:
    """
    Raises:
        HTTPException(503): If the lifespan has not finished starting up
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return container


def get_webhook_service(container: Annotated[Container, Depends(get_container)]) -> WebhookService:
    return container.webhook_service


def get_current_user_id(request: Request) -> str:
    user_id = request.headers.get(HEADER_USER_ID)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user_id


# ============================================================================
# TYPE ALIASES FOR ROUTE SIGNATURES
# ============================================================================

ContainerDep = Annotated[Container, Depends(get_container)]
WebhookServiceDep = Annotated[WebhookService, Depends(get_webhook_service)]
UserIdDep = Annotated[str, Depends(get_current_user_id)]
