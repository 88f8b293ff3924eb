"""Canonical push event produced by the payload normalizer."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

RELAY_MARKER = "autodeploy_relay"


class PushEvent(BaseModel):
    """Dialect-independent view of a push webhook.

    Frozen once normalized. Relaying works on ``model_copy`` with
    ``relay_flag=True`` so the caller's event is never mutated.
    """

    model_config = ConfigDict(frozen=True)

    repository_identifier: str
    raw_ref: str | None = None
    explicit_branch: str | None = None
    commit_branches: tuple[str, ...] = ()
    change_branches: tuple[str, ...] = ()
    origin_host_hint: str | None = None
    relay_flag: bool = False
    # Decoded upstream mapping, forwarded verbatim (plus the relay marker) to peers
    source: dict[str, Any] = Field(default_factory=dict, repr=False)

    def is_from(self, marker: str) -> bool:
        """True when the origin hint names the given hosting provider."""
        return bool(marker) and marker in (self.origin_host_hint or "")

    def relay_payload(self) -> str:
        """Serialize the event for the ``payload`` form field of a relay POST."""
        data = dict(self.source) if self.source else self._synthesized_source()
        if self.relay_flag:
            data[RELAY_MARKER] = "true"
        return json.dumps(data)

    def _synthesized_source(self) -> dict[str, Any]:
        data: dict[str, Any] = {"repository": {"slug": self.repository_identifier}}
        if self.raw_ref:
            data["ref"] = self.raw_ref
        if self.explicit_branch:
            data["branch"] = self.explicit_branch
        if self.commit_branches:
            data["commits"] = [{"branch": b} for b in self.commit_branches]
        if self.change_branches:
            data["push"] = {"changes": [{"new": {"name": b}} for b in self.change_branches]}
        if self.origin_host_hint:
            data["canon_url"] = self.origin_host_hint
        return data


@dataclass(frozen=True)
class NormalizationError:
    """Tagged failure returned when no payload interpretation was usable.

    Carries the raw request so the HTTP layer can log it for diagnosis.
    """

    raw_body: bytes
    form_fields: Mapping[str, str]
    reasons: tuple[str, ...] = field(default_factory=tuple)

    def diagnostic(self) -> dict[str, Any]:
        return {
            "raw_body": self.raw_body.decode("utf-8", errors="replace"),
            "form_fields": dict(self.form_fields),
            "reasons": list(self.reasons),
        }
