"""Symbolic id to tracker handle resolution."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from .base import IssueHandle


class EntityKind(str, Enum):
    INITIATIVE = "initiative"
    CAPABILITY = "capability"
    DELIVERABLE = "deliverable"


class SymbolicReferenceResolver:
    """Append-only maps from ``(kind, symbolic id)`` to ``IssueHandle``.

    Populated by the materializer in creation order. A missing id simply
    means the entity was never created (or not yet), so ``lookup`` returns
    ``None`` instead of raising. Single writer; not thread-safe.
    """

    def __init__(self) -> None:
        self._maps: dict[EntityKind, dict[str, IssueHandle]] = {kind: {} for kind in EntityKind}

    def register(self, kind: EntityKind, symbolic_id: str, handle: IssueHandle) -> None:
        mapping = self._maps[kind]
        if symbolic_id in mapping:
            raise ValueError(f"{kind.value} {symbolic_id!r} is already registered")
        mapping[symbolic_id] = handle

    def lookup(self, kind: EntityKind, symbolic_id: str) -> Optional[IssueHandle]:
        return self._maps[kind].get(symbolic_id)

    def count(self, kind: Optional[EntityKind] = None) -> int:
        if kind is not None:
            return len(self._maps[kind])
        return sum(len(mapping) for mapping in self._maps.values())

    def to_dict(self) -> dict[str, dict[str, dict[str, Any]]]:
        """Issue map for persistence: ``{kind: {id: {number, url, title}}}``."""
        return {
            kind.value: {
                symbolic_id: {"number": handle.number, "url": handle.url, "title": handle.title}
                for symbolic_id, handle in mapping.items()
            }
            for kind, mapping in self._maps.items()
        }
