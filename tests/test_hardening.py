"""Tests for production hardening: exception handler, structlog usage, bounded timeouts."""

from __future__ import annotations

import inspect
import json

import pytest


# ---------------------------------------------------------------------------
# 1. Global exception handler returns JSON 500
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_global_exception_handler_returns_json() -> None:
    """The unhandled_exception_handler returns JSON with status 500."""
    from unittest.mock import MagicMock

    from autodeploy.main import unhandled_exception_handler

    mock_request = MagicMock()
    mock_request.url.path = "/deploy"
    mock_request.method = "POST"

    response = await unhandled_exception_handler(mock_request, Exception("boom"))

    assert response.status_code == 500
    assert json.loads(response.body) == {"detail": "Internal server error"}


# ---------------------------------------------------------------------------
# 2. Unwired application fails closed
# ---------------------------------------------------------------------------


def test_get_reconciler_requires_lifespan(monkeypatch: pytest.MonkeyPatch) -> None:
    from autodeploy import dependencies

    monkeypatch.setattr(dependencies, "_reconciler", None)

    with pytest.raises(RuntimeError, match="not initialised"):
        dependencies.get_reconciler()


# ---------------------------------------------------------------------------
# 3. Logging configuration
# ---------------------------------------------------------------------------


def test_configure_logging_json(capsys: pytest.CaptureFixture[str]) -> None:
    """After configure_logging, structlog events are emitted as JSON lines."""
    import logging

    import structlog

    from autodeploy.logging_config import configure_logging

    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(json_logs=True, log_level="INFO")
        structlog.get_logger("autodeploy.test").info("hardening_probe", answer=42)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        structlog.reset_defaults()

    lines = [line for line in capsys.readouterr().out.splitlines() if "hardening_probe" in line]
    assert lines
    record = json.loads(lines[-1])
    assert record["event"] == "hardening_probe"
    assert record["answer"] == 42
    assert record["level"] == "info"


# ---------------------------------------------------------------------------
# 4. Outbound calls carry explicit timeouts
# ---------------------------------------------------------------------------


def test_relay_client_has_explicit_timeout() -> None:
    """The lifespan creates httpx.AsyncClient with an explicit timeout parameter."""
    from autodeploy import main as main_module

    source = inspect.getsource(main_module)
    assert "timeout=" in source, "httpx.AsyncClient must have explicit timeout"


def test_git_runner_has_timeout() -> None:
    from autodeploy.services import git_runner

    source = inspect.getsource(git_runner.SubprocessGitRunner)
    assert "wait_for" in source


# ---------------------------------------------------------------------------
# 5. No stdlib logging.getLogger in service or router modules
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "module_path",
    [
        "autodeploy.routers.deploy",
        "autodeploy.services.git_runner",
        "autodeploy.services.relay_router",
        "autodeploy.services.synchronizer",
    ],
)
def test_no_stdlib_logging(module_path: str) -> None:
    """Modules must use structlog, not stdlib logging.getLogger."""
    import importlib

    module = importlib.import_module(module_path)
    source = inspect.getsource(module)
    assert "logging.getLogger" not in source, f"{module_path} still uses stdlib logging"
    assert "structlog" in source, f"{module_path} should use structlog"
