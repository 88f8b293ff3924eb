"""Outbound relay transport with protocol-based swappable implementations.

Production code uses ``HttpxRelayTransport`` which POSTs the relayed event
as a form field over a shared ``httpx.AsyncClient``. Tests use
``InMemoryRelayTransport`` which captures deliveries for assertion and can be
told to fail for specific URLs.
"""

from __future__ import annotations

from typing import Protocol

import httpx


class RelayDeliveryError(Exception):
    """Delivery to one peer failed (connection error, timeout or non-2xx)."""


class RelayTransport(Protocol):
    """Protocol for delivering a relayed event to a peer."""

    async def post(self, url: str, payload: str) -> None:
        """POST ``payload`` as the ``payload`` form field to ``url``.

        Raises:
            RelayDeliveryError: if the peer could not be reached or refused it.
        """
        ...


class HttpxRelayTransport:
    """Production transport over a shared ``httpx.AsyncClient``.

    The client is owned by the application lifespan; its timeout bounds every
    delivery.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def post(self, url: str, payload: str) -> None:
        """Deliver the event, translating httpx failures to ``RelayDeliveryError``."""
        try:
            resp = await self._client.post(url, data={"payload": payload})
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RelayDeliveryError(f"{url} answered {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise RelayDeliveryError(f"{url}: {exc.__class__.__name__}: {exc}") from exc


class InMemoryRelayTransport:
    """Test double that records deliveries for assertions."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.deliveries: list[dict] = []
        self.failing = failing or set()

    async def post(self, url: str, payload: str) -> None:
        """Record the delivery, or raise for URLs listed in ``failing``."""
        if url in self.failing:
            raise RelayDeliveryError(f"{url}: simulated failure")
        self.deliveries.append({"url": url, "payload": payload})
