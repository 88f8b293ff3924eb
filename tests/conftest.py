"""Shared test fixtures: in-memory collaborators, reconciler and FastAPI test client."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from autodeploy.dependencies import get_reconciler
from autodeploy.main import app
from autodeploy.services.git_runner import InMemoryGitRunner
from autodeploy.services.reconciler import Reconciler
from autodeploy.services.relay_client import InMemoryRelayTransport
from autodeploy.services.relay_router import RelayRouter
from autodeploy.services.routing import RoutingTable

SERVER_NAME = "this-host"


@pytest.fixture
def anyio_backend() -> str:
    """The application is built on asyncio primitives; run anyio tests on asyncio."""
    return "asyncio"


@pytest.fixture
def git_runner() -> InMemoryGitRunner:
    """A fresh git double; working copies report ``main`` checked out."""
    return InMemoryGitRunner(current_branch="main")


@pytest.fixture
def relay_transport() -> InMemoryRelayTransport:
    """A fresh relay transport double for inspecting deliveries."""
    return InMemoryRelayTransport()


@pytest.fixture
def routing_table() -> RoutingTable:
    return RoutingTable({"peer1": ["main"], "peer2": ["staging"], SERVER_NAME: ["main"]})


@pytest.fixture
def repositories_dir(tmp_path: Path) -> Path:
    """Base directory for working copies; create ``<dir>/<name>`` to make a repo local."""
    base = tmp_path / "www"
    base.mkdir()
    return base


@pytest.fixture
def reconciler(
    repositories_dir: Path,
    routing_table: RoutingTable,
    git_runner: InMemoryGitRunner,
    relay_transport: InMemoryRelayTransport,
) -> Reconciler:
    router = RelayRouter(routing_table, relay_transport, server_name=SERVER_NAME)
    return Reconciler(
        repositories_dir=str(repositories_dir),
        routing_table=routing_table,
        runner=git_runner,
        router=router,
    )


@pytest.fixture
async def client(reconciler: Reconciler) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with the reconciler dependency overridden.

    The lifespan does not run under ASGITransport, so no real git runner or
    relay client is ever created.
    """
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
