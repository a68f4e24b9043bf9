"""Dependency edges between created tracker items.

Runs after materialization. For every capability (then every deliverable)
with dependencies, each dependency id is resolved to a handle; edges whose
endpoints were never created are dropped. A native "blocked by" link is
attempted for every resolvable edge, then a single summary comment is
posted on the dependent item. Nothing here raises for an individual edge.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from prd2issues.events import EventKind, EventLevel, Observer, PipelineEvent, null_observer
from prd2issues.planner.models import Hierarchy

from .base import IssueHandle, TrackerClient, TrackerError
from .bodies import dependency_comment
from .resolver import EntityKind, SymbolicReferenceResolver


@dataclass
class LinkReport:
    linked: int = 0
    unlinked: int = 0
    dropped: int = 0
    comments: int = 0
    degraded: int = 0
    dropped_edges: list[tuple[str, str]] = field(default_factory=list)

    @property
    def resolvable(self) -> int:
        return self.linked + self.unlinked


class DependencyLinker:
    """Turns symbolic dependency lists into blocking links and comments."""

    def __init__(self, tracker: TrackerClient, observer: Observer = null_observer) -> None:
        self.tracker = tracker
        self.observer = observer

    def _emit(self, kind: EventKind, message: str, level: EventLevel = EventLevel.INFO, **data: Any) -> None:
        self.observer(PipelineEvent(kind=kind, message=message, level=level, data=data))

    async def link_dependencies(
        self,
        hierarchy: Hierarchy,
        resolver: SymbolicReferenceResolver,
    ) -> LinkReport:
        report = LinkReport()
        for _, capability in hierarchy.iter_capabilities():
            await self._link_item(
                EntityKind.CAPABILITY, capability.id, capability.dependencies, resolver, report
            )
        for _, _, deliverable in hierarchy.iter_deliverables():
            await self._link_item(
                EntityKind.DELIVERABLE, deliverable.id, deliverable.dependencies, resolver, report
            )
        return report

    async def _link_item(
        self,
        kind: EntityKind,
        symbolic_id: str,
        dependencies: list[str],
        resolver: SymbolicReferenceResolver,
        report: LinkReport,
    ) -> None:
        wanted = [d for d in dict.fromkeys(dependencies) if d != symbolic_id]
        if len(wanted) < len(set(dependencies)):
            self._emit(
                EventKind.DEPENDENCY_DROPPED,
                f"Ignored self-dependency of {symbolic_id}",
                EventLevel.DEBUG,
                dependent=symbolic_id,
                dependency=symbolic_id,
            )
        if not wanted:
            return

        dependent = resolver.lookup(kind, symbolic_id)
        blockers: list[IssueHandle] = []
        for dependency_id in wanted:
            blocker = resolver.lookup(kind, dependency_id)
            if dependent is None or blocker is None:
                report.dropped += 1
                report.dropped_edges.append((symbolic_id, dependency_id))
                self._emit(
                    EventKind.DEPENDENCY_DROPPED,
                    f"Dropped dependency {symbolic_id} -> {dependency_id}: not created",
                    EventLevel.DEBUG,
                    dependent=symbolic_id,
                    dependency=dependency_id,
                )
                continue
            blockers.append(blocker)

        if dependent is None or not blockers:
            return

        any_linked = False
        for blocker in blockers:
            try:
                await self.tracker.create_blocking_link(blocker, dependent)
            except TrackerError as exc:
                report.unlinked += 1
                self._emit(
                    EventKind.BEST_EFFORT_DEGRADED,
                    f"Could not link {blocker.ref} blocks {dependent.ref}, "
                    f"will list it in a comment instead: {exc}",
                    EventLevel.WARNING,
                    blocker=blocker.number,
                    blocked=dependent.number,
                )
                continue
            any_linked = True
            report.linked += 1
            self._emit(
                EventKind.DEPENDENCY_LINKED,
                f"Linked {blocker.ref} blocks {dependent.ref}",
                EventLevel.DEBUG,
                blocker=blocker.number,
                blocked=dependent.number,
            )

        text = dependency_comment([b.ref for b in blockers], kind.value, any_linked)
        try:
            await self.tracker.add_comment(dependent, text)
        except TrackerError as exc:
            report.degraded += 1
            self._emit(
                EventKind.BEST_EFFORT_DEGRADED,
                f"Could not comment dependencies on {dependent.ref}: {exc}",
                EventLevel.WARNING,
                issue=dependent.number,
            )
            return
        report.comments += 1
        self._emit(
            EventKind.DEPENDENCY_COMMENTED,
            f"Listed {len(blockers)} dependencies on {dependent.ref}",
            EventLevel.DEBUG,
            issue=dependent.number,
        )
