"""Observable events emitted by the decomposition and materialization core.

The core never prints. It reports what happened to an injected observer, a
plain callable taking a ``PipelineEvent``. The CLI installs
``prd2issues.utils.ConsoleReporter``; tests usually pass ``list.append``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class EventKind(str, Enum):
    """Everything the core can report."""

    # Decomposition
    OVERVIEW_GENERATED = "overview_generated"
    INITIATIVE_GENERATED = "initiative_generated"
    INITIATIVE_FAILED = "initiative_failed"
    SNAPSHOT_WRITTEN = "snapshot_written"

    # Materialization
    ITEM_CREATED = "item_created"
    ITEM_FAILED = "item_failed"
    ITEM_SKIPPED = "item_skipped"
    PARENT_LINKED = "parent_linked"
    PARENT_FALLBACK = "parent_fallback"

    # Dependency linking
    DEPENDENCY_LINKED = "dependency_linked"
    DEPENDENCY_DROPPED = "dependency_dropped"
    DEPENDENCY_COMMENTED = "dependency_commented"

    # Project board
    PROJECT_ITEM_ADDED = "project_item_added"

    # A label, relationship or comment call failed but the owning item exists.
    BEST_EFFORT_DEGRADED = "best_effort_degraded"

    # Free-form progress line from the pipeline itself.
    MESSAGE = "message"


class EventLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


@dataclass
class PipelineEvent:
    """A single observable occurrence."""

    kind: EventKind
    message: str
    level: EventLevel = EventLevel.INFO
    data: dict[str, Any] = field(default_factory=dict)


Observer = Callable[[PipelineEvent], None]


def null_observer(event: PipelineEvent) -> None:
    """Observer that discards every event."""
