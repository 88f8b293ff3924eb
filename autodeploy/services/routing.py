"""Static peer routing table: which server deploys which branches."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

from pydantic import TypeAdapter

_TABLE_ADAPTER = TypeAdapter(dict[str, list[str]])


class RoutingTable:
    """Read-only mapping of peer server -> branch names it is responsible for.

    Built once at startup and shared by every request; there are no mutators.
    """

    def __init__(self, servers: Mapping[str, Iterable[str]] | None = None) -> None:
        self._servers: Mapping[str, tuple[str, ...]] = MappingProxyType(
            {server: tuple(branches) for server, branches in (servers or {}).items()}
        )

    def __bool__(self) -> bool:
        return bool(self._servers)

    def __len__(self) -> int:
        return len(self._servers)

    def __iter__(self) -> Iterator[str]:
        return iter(self._servers)

    def __repr__(self) -> str:
        return f"RoutingTable({dict(self._servers)!r})"

    @property
    def servers(self) -> Mapping[str, tuple[str, ...]]:
        return self._servers

    def peers_for(self, branch: str, *, exclude: str | None = None) -> list[str]:
        """Servers whose branch set contains ``branch``, minus ``exclude``."""
        return [
            server
            for server, branches in self._servers.items()
            if branch in branches and server != exclude
        ]

    def branches(self) -> list[str]:
        """Every branch named anywhere in the table, first-seen order, no duplicates."""
        seen: dict[str, None] = {}
        for branches in self._servers.values():
            for branch in branches:
                seen.setdefault(branch, None)
        return list(seen)


def load_routing_table(inline: Mapping[str, list[str]], path: str = "") -> RoutingTable:
    """Build the routing table from settings.

    When ``path`` is set, the JSON file there replaces the inline table.

    Raises:
        OSError: if the file cannot be read.
        pydantic.ValidationError: if the file is not ``{server: [branch, ...]}``.
    """
    if path:
        raw = Path(path).read_text(encoding="utf-8")
        return RoutingTable(_TABLE_ADAPTER.validate_json(raw))
    return RoutingTable(inline)
