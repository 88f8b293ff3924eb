"""Reconcile an inbound push webhook with this host and its peers.

normalize -> extract branches -> for each branch, deploy locally or relay.

The reconciler only composes the other services and reports what happened;
logging the outcome (including malformed payloads) is left to the caller.
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from autodeploy.schemas.events import NormalizationError, PushEvent
from autodeploy.schemas.outcomes import (
    BranchOutcome,
    ReconcileOutcome,
    ReconcileStatus,
    SyncStatus,
)
from autodeploy.services.branches import extract_branches
from autodeploy.services.git_runner import GitRunner
from autodeploy.services.normalizer import normalize
from autodeploy.services.relay_router import RelayRouter
from autodeploy.services.repo_locks import RepositoryLocks
from autodeploy.services.routing import RoutingTable
from autodeploy.services.synchronizer import synchronize


class Reconciler:
    """Handles one webhook at a time; safe to share between concurrent requests."""

    def __init__(
        self,
        *,
        repositories_dir: str,
        routing_table: RoutingTable,
        runner: GitRunner,
        router: RelayRouter,
        locks: RepositoryLocks | None = None,
        default_branch: str = "master",
        merge_quirk_marker: str = "bitbucket.org",
        sync_options: Mapping[str, str] | None = None,
    ) -> None:
        self._repositories_dir = repositories_dir
        self._table = routing_table
        self._runner = runner
        self._router = router
        self._locks = locks or RepositoryLocks()
        self._default_branch = default_branch
        self._marker = merge_quirk_marker
        self._sync_options = dict(sync_options or {})

    @property
    def routing_table(self) -> RoutingTable:
        return self._table

    def repository_path(self, repository_identifier: str) -> str:
        return os.path.join(self._repositories_dir, repository_identifier)

    async def handle(self, raw_body: bytes, form_fields: Mapping[str, str]) -> ReconcileOutcome:
        """Process one webhook request end to end."""
        event = normalize(raw_body, form_fields, merge_quirk_marker=self._marker)
        if isinstance(event, NormalizationError):
            return ReconcileOutcome(status=ReconcileStatus.MALFORMED_PAYLOAD, error=event)

        branches = extract_branches(
            event,
            self._table,
            default_branch=self._default_branch,
            merge_quirk_marker=self._marker,
        )
        if not branches:
            error = NormalizationError(
                raw_body=raw_body,
                form_fields=dict(form_fields),
                reasons=("no branch could be derived from the payload",),
            )
            return ReconcileOutcome(
                status=ReconcileStatus.MALFORMED_PAYLOAD,
                repository=event.repository_identifier,
                error=error,
            )

        results = [await self.reconcile_branch(event, branch) for branch in branches]
        status = (
            ReconcileStatus.SUCCEEDED
            if any(r.succeeded for r in results)
            else ReconcileStatus.FAILED
        )
        return ReconcileOutcome(status=status, repository=event.repository_identifier, branches=results)

    async def reconcile_branch(self, event: PushEvent, branch: str) -> BranchOutcome:
        """Deploy ``branch`` here if this host serves it, otherwise relay it."""
        repository = event.repository_identifier
        path = self.repository_path(repository)

        if not os.path.isdir(path):
            relay = await self._router.route(repository, branch, event)
            return BranchOutcome(branch=branch, relay=relay)

        async with self._locks.hold(path):
            result = await synchronize(self._runner, path, branch, **self._sync_options)

        if result.status is SyncStatus.BRANCH_MISMATCH:
            # Another host may have this branch checked out
            relay = await self._router.route(repository, branch, event)
            return BranchOutcome(branch=branch, sync=result, relay=relay)
        return BranchOutcome(branch=branch, sync=result)
