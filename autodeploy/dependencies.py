"""Centralized FastAPI dependencies for use with Depends()."""

import httpx

from autodeploy.config import Settings
from autodeploy.services.git_runner import SubprocessGitRunner
from autodeploy.services.reconciler import Reconciler
from autodeploy.services.relay_client import HttpxRelayTransport
from autodeploy.services.relay_router import RelayRouter
from autodeploy.services.repo_locks import RepositoryLocks
from autodeploy.services.routing import RoutingTable, load_routing_table

_reconciler: Reconciler | None = None


def build_reconciler(settings: Settings, http_client: httpx.AsyncClient) -> Reconciler:
    """Wire the production collaborators from settings.

    The routing table is read here, once, before any request is served.
    """
    routing_table: RoutingTable = load_routing_table(settings.routing_table, settings.routing_table_file)
    router = RelayRouter(
        routing_table,
        HttpxRelayTransport(http_client),
        server_name=settings.server_name,
        scheme=settings.relay_scheme,
        path=settings.relay_path,
    )
    return Reconciler(
        repositories_dir=settings.repositories_dir,
        routing_table=routing_table,
        runner=SubprocessGitRunner(settings.git_bin, timeout=settings.git_timeout),
        router=router,
        locks=RepositoryLocks(),
        default_branch=settings.default_branch,
        merge_quirk_marker=settings.merge_quirk_marker,
        sync_options={
            "remote": settings.git_remote,
            "commit_message": settings.commit_message,
            "author_name": settings.fallback_author_name,
            "author_email": settings.fallback_author_email,
        },
    )


def init_production_deps(settings: Settings, http_client: httpx.AsyncClient) -> Reconciler:
    """Install the process-wide reconciler. Called from the app lifespan."""
    global _reconciler  # noqa: PLW0603

    _reconciler = build_reconciler(settings, http_client)
    return _reconciler


def get_reconciler() -> Reconciler:
    """Return the application reconciler.

    Tests replace this dependency through ``app.dependency_overrides``.

    Raises:
        RuntimeError: if the lifespan has not initialised it yet.
    """
    if _reconciler is None:
        raise RuntimeError("Reconciler not initialised; is the app lifespan running?")
    return _reconciler


__all__ = [
    "build_reconciler",
    "get_reconciler",
    "init_production_deps",
]
