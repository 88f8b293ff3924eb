"""Forward push events to the peer servers that deploy a branch.

Relaying is a single hop: the forwarded copy carries ``autodeploy_relay``,
and a server never relays an event that already has it. That boolean is the
whole loop guard; peers that cannot deploy a relayed event drop it.
"""

from __future__ import annotations

import asyncio

import structlog

from autodeploy.schemas.events import PushEvent
from autodeploy.schemas.outcomes import RelayDelivery, RelayOutcome, RelayStatus
from autodeploy.services.relay_client import RelayDeliveryError, RelayTransport
from autodeploy.services.routing import RoutingTable

logger = structlog.get_logger()


class RelayRouter:
    """Decides whether and where to relay an event for one branch."""

    def __init__(
        self,
        routing_table: RoutingTable,
        transport: RelayTransport,
        *,
        server_name: str,
        scheme: str = "http",
        path: str = "/deploy",
    ) -> None:
        self._table = routing_table
        self._transport = transport
        self._server_name = server_name
        self._scheme = scheme
        self._path = path

    def peer_url(self, peer: str) -> str:
        return f"{self._scheme}://{peer}{self._path}"

    async def route(self, repository_identifier: str, branch: str, event: PushEvent) -> RelayOutcome:
        """Relay ``event`` to every peer responsible for ``branch``.

        Deliveries run concurrently and independently; one peer failing or
        timing out does not affect the others.
        """
        log = logger.bind(repository=repository_identifier, branch=branch)

        if event.relay_flag:
            log.info("relay_dropped_already_relayed")
            return RelayOutcome(status=RelayStatus.DROPPED, reason="already_relayed")

        if not self._table:
            log.info("relay_dropped_no_servers")
            return RelayOutcome(status=RelayStatus.DROPPED, reason="no_servers")

        peers = self._table.peers_for(branch, exclude=self._server_name)
        if not peers:
            log.info("relay_dropped_no_matching_peer")
            return RelayOutcome(status=RelayStatus.DROPPED, reason="no_matching_peer")

        payload = event.model_copy(update={"relay_flag": True}).relay_payload()
        deliveries = await asyncio.gather(*(self._deliver(peer, payload, log) for peer in peers))

        log.info("relay_finished", peers=peers, delivered=sum(d.ok for d in deliveries))
        return RelayOutcome(status=RelayStatus.RELAYED, deliveries=list(deliveries))

    async def _deliver(self, peer: str, payload: str, log: structlog.stdlib.BoundLogger) -> RelayDelivery:
        url = self.peer_url(peer)
        log.info("relay_sending", peer=peer, url=url)
        try:
            await self._transport.post(url, payload)
        except RelayDeliveryError as exc:
            log.warning("relay_delivery_failed", peer=peer, error=str(exc))
            return RelayDelivery(peer=peer, url=url, ok=False, error=str(exc))
        return RelayDelivery(peer=peer, url=url, ok=True)
