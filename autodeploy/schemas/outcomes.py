"""Result models for synchronization, relaying and whole-event reconciliation."""

from enum import Enum
from pydantic import BaseModel, Field

from autodeploy.schemas.events import NormalizationError


class SyncStatus(str, Enum):
    DEPLOYED = "deployed"
    BRANCH_MISMATCH = "branch_mismatch"
    SUBPROCESS_FAILURE = "subprocess_failure"


class SyncResult(BaseModel):
    """Outcome of one ``RepositorySynchronizer`` run.

    ``output`` holds the captured git output for anything but ``deployed``;
    ``command`` is the shell-quoted command line that failed, if any.
    """

    status: SyncStatus
    output: str = ""
    command: str | None = None
    committed: bool = False
    pushed: bool = False

    @property
    def deployed(self) -> bool:
        return self.status is SyncStatus.DEPLOYED


class RelayStatus(str, Enum):
    RELAYED = "relayed"
    DROPPED = "dropped"


class RelayDelivery(BaseModel):
    """Delivery attempt to a single peer."""

    peer: str
    url: str
    ok: bool
    error: str | None = None


class RelayOutcome(BaseModel):
    status: RelayStatus
    reason: str | None = None
    deliveries: list[RelayDelivery] = Field(default_factory=list)

    @property
    def delivered(self) -> bool:
        """True when the event reached at least one peer."""
        return self.status is RelayStatus.RELAYED and any(d.ok for d in self.deliveries)


class BranchOutcome(BaseModel):
    """What happened to one candidate branch of an event."""

    branch: str
    sync: SyncResult | None = None
    relay: RelayOutcome | None = None

    @property
    def succeeded(self) -> bool:
        if self.sync is not None and self.sync.deployed:
            return True
        return self.relay is not None and self.relay.delivered


class ReconcileStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    MALFORMED_PAYLOAD = "malformed_payload"


class ReconcileOutcome(BaseModel):
    """Overall result of handling one inbound webhook."""

    status: ReconcileStatus
    repository: str | None = None
    branches: list[BranchOutcome] = Field(default_factory=list)
    # Set for malformed payloads so the caller can log the raw request
    error: NormalizationError | None = Field(default=None, exclude=True)
