"""Deploy webhook router.

Accepts push notifications as a JSON body or as a form-encoded body with a
``payload`` field. There is no authentication at this layer; restrict access
to the endpoint at the network level.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from autodeploy.dependencies import get_reconciler
from autodeploy.schemas.outcomes import ReconcileStatus
from autodeploy.services.reconciler import Reconciler

logger = structlog.get_logger()

router = APIRouter(tags=["deploy"])

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

PLACEHOLDER = {"status": "ok", "detail": "Nothing to see here. POST push webhooks to /deploy."}


async def read_form_fields(request: Request) -> dict[str, str]:
    """Text fields of a form-encoded request; empty for any other content type."""
    content_type = request.headers.get("content-type", "").lower()
    if not content_type.startswith(_FORM_TYPES):
        return {}
    form = await request.form()
    return {key: value for key, value in form.items() if not isinstance(value, UploadFile)}


@router.post("/deploy")
async def deploy(
    request: Request,
    reconciler: Annotated[Reconciler, Depends(get_reconciler)],
) -> JSONResponse:
    """Receive a push webhook and deploy or relay every branch it names."""
    raw_body = await request.body()
    form_fields = await read_form_fields(request)

    outcome = await reconciler.handle(raw_body, form_fields)

    if outcome.status is ReconcileStatus.MALFORMED_PAYLOAD:
        logger.error(
            "deploy_malformed_payload",
            repository=outcome.repository,
            **outcome.error.diagnostic(),
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": outcome.status.value, "detail": "Missing or malformed payload"},
        )

    logger.info(
        "deploy_processed",
        repository=outcome.repository,
        status=outcome.status.value,
        branches=[b.branch for b in outcome.branches],
        succeeded=[b.branch for b in outcome.branches if b.succeeded],
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=outcome.model_dump(mode="json"))


@router.get("/deploy")
async def deploy_placeholder() -> dict:
    """Static placeholder for browsers hitting the webhook URL."""
    return PLACEHOLDER


@router.get("/")
async def index() -> dict:
    """Static placeholder for the site root."""
    return PLACEHOLDER
