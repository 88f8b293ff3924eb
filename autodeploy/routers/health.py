"""Health check endpoint reporting the loaded routing configuration."""

from typing import Annotated

from fastapi import APIRouter, Depends

from autodeploy.config import settings
from autodeploy.dependencies import get_reconciler
from autodeploy.schemas.health import HealthResponse
from autodeploy.services.reconciler import Reconciler

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
async def healthz(reconciler: Annotated[Reconciler, Depends(get_reconciler)]) -> HealthResponse:
    """Report liveness, this host's identity and how many peers it can relay to.

    Depending on the reconciler makes the check fail until the lifespan has
    wired the application.
    """
    return HealthResponse(
        status="ok",
        server_name=settings.server_name,
        peers=len(reconciler.routing_table),
    )
