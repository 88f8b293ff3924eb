"""Integration tests for the /healthz endpoint using the test reconciler."""

import pytest
from httpx import AsyncClient


@pytest.mark.anyio
async def test_healthz_returns_200(client: AsyncClient) -> None:
    """GET /healthz should return 200 with the number of configured peers."""
    response = await client.get("/healthz")
    assert response.status_code == 200

    body = response.json()
    assert body["status"] == "ok"
    assert body["peers"] == 3


@pytest.mark.anyio
async def test_healthz_response_keys(client: AsyncClient) -> None:
    """GET /healthz response should contain exactly the expected keys."""
    response = await client.get("/healthz")
    body = response.json()
    assert set(body.keys()) == {"status", "server_name", "peers"}
