"""FastAPI application factory with lifespan context manager."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from autodeploy.config import settings
from autodeploy.dependencies import init_production_deps
from autodeploy.logging_config import configure_logging
from autodeploy.routers import deploy, health


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging, load the routing table and own the relay HTTP client."""
    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)

    async with httpx.AsyncClient(timeout=httpx.Timeout(settings.relay_timeout)) as http_client:
        reconciler = init_production_deps(settings, http_client)
        structlog.get_logger().info(
            "startup",
            server_name=settings.server_name,
            repositories_dir=settings.repositories_dir,
            peers=list(reconciler.routing_table),
        )
        yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for any unhandled exception."""
    logger = structlog.get_logger()
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(health.router)
app.include_router(deploy.router)
