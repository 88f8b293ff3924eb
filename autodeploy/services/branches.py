"""Derive candidate branch names from a canonical push event."""

from __future__ import annotations

from collections.abc import Iterable

from autodeploy.schemas.events import PushEvent
from autodeploy.services.routing import RoutingTable


def _dedupe(names: Iterable[str | None]) -> list[str]:
    seen: dict[str, None] = {}
    for name in names:
        if name:
            seen.setdefault(name, None)
    return list(seen)


def branch_from_ref(ref: str | None) -> str | None:
    """Last ``/`` segment of a ref: ``refs/heads/main`` -> ``main``."""
    if not ref:
        return None
    return ref.rsplit("/", 1)[-1] or None


def named_branches(event: PushEvent) -> list[str]:
    """Branches the event names itself: explicit, ref, commit labels, change targets."""
    return _dedupe(
        [
            event.explicit_branch,
            branch_from_ref(event.raw_ref),
            *event.commit_branches,
            *event.change_branches,
        ]
    )


def extract_branches(
    event: PushEvent,
    routing_table: RoutingTable,
    *,
    default_branch: str = "master",
    merge_quirk_marker: str = "bitbucket.org",
) -> list[str]:
    """Collect every branch the event refers to, in priority order.

    Sources are unioned, not short-circuited: explicit branch, ref, commit
    branch labels, then change-list targets. The first occurrence of a name
    wins.

    Bitbucket omits branch names when a push only contains commits merged in
    from elsewhere. For such events the candidates are the default branch
    plus every branch in the routing table.
    """
    candidates = named_branches(event)
    if candidates or not event.is_from(merge_quirk_marker):
        return candidates
    return _dedupe([default_branch, *routing_table.branches()])
