"""Staged creation of tracker items for a Hierarchy.

Items are created in strict passes so a parent always exists before any of
its children is requested:

1. one item per initiative (a failure here aborts the run);
2. one item per capability, then a native parent link to its initiative;
3. one item per deliverable of each expanding capability, then a native
   parent link to its capability.

Every created handle is registered in the ``SymbolicReferenceResolver``;
dependency edges are linked afterwards by ``DependencyLinker``.

When the native parent link fails, ``link_to_parent`` falls back to a
``parent:#<n>`` label and a textual parent reference at the top of the
child's body. The three fallback steps are attempted independently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from prd2issues.events import EventKind, EventLevel, Observer, PipelineEvent, null_observer
from prd2issues.planner.models import Hierarchy

from .base import IssueHandle, TrackerClient, TrackerError
from .bodies import (
    PARENT_LABEL_COLOR,
    capability_labels,
    capability_title,
    deliverable_labels,
    deliverable_title,
    initiative_labels,
    initiative_title,
    parent_label,
    render_capability_body,
    render_deliverable_body,
    render_initiative_body,
    with_parent_reference,
)
from .resolver import EntityKind, SymbolicReferenceResolver


class MaterializationError(Exception):
    """Base class for materialization failures."""


class MaterializationFatal(MaterializationError):
    """A failure that leaves nothing sensible to continue with."""

    def __init__(self, message: str, created: Optional[list[CreatedItem]] = None) -> None:
        super().__init__(message)
        self.created = created or []


@dataclass(frozen=True)
class CreatedItem:
    kind: EntityKind
    symbolic_id: str
    handle: IssueHandle
    parent_linked: Optional[bool] = None


@dataclass(frozen=True)
class FailedItem:
    kind: EntityKind
    symbolic_id: str
    title: str
    error: str


def _native_failure_hint(exc: TrackerError) -> str:
    if exc.status == 404:
        return "sub-issues are not available for this repository"
    if exc.status == 403:
        return "the token is not allowed to create sub-issues (needs 'repo' scope)"
    if exc.status == 422:
        return f"validation failed: {exc}"
    return str(exc)


async def link_to_parent(
    tracker: TrackerClient,
    parent: IssueHandle,
    parent_title: str,
    child: IssueHandle,
    observer: Observer = null_observer,
) -> tuple[IssueHandle, bool]:
    """Attach *child* to *parent*, natively if possible.

    Returns:
        The child handle (with the updated body if the fallback rewrote it)
        and whether the native link succeeded.
    """
    try:
        await tracker.create_parent_child_link(parent, child)
    except TrackerError as exc:
        observer(PipelineEvent(
            kind=EventKind.PARENT_FALLBACK,
            message=(
                f"Sub-issue link {child.ref} -> {parent.ref} failed "
                f"({_native_failure_hint(exc)}); using label and body link"
            ),
            level=EventLevel.WARNING,
            data={"parent": parent.number, "child": child.number, "status": exc.status},
        ))
    else:
        observer(PipelineEvent(
            kind=EventKind.PARENT_LINKED,
            message=f"Linked {child.ref} as sub-issue of {parent.ref}",
            level=EventLevel.DEBUG,
            data={"parent": parent.number, "child": child.number},
        ))
        return child, True

    def degraded(step: str, error: TrackerError) -> None:
        observer(PipelineEvent(
            kind=EventKind.BEST_EFFORT_DEGRADED,
            message=f"Fallback step '{step}' failed for {child.ref}: {error}",
            level=EventLevel.WARNING,
            data={"child": child.number, "step": step},
        ))

    label = parent_label(parent.number)
    try:
        await tracker.ensure_label_exists(label, PARENT_LABEL_COLOR, f"Child issues of #{parent.number}")
    except TrackerError as exc:
        if not exc.already_exists:
            degraded("create parent label", exc)

    try:
        await tracker.add_label(child, label)
    except TrackerError as exc:
        degraded("add parent label", exc)

    try:
        child = await tracker.update_item_body(
            child, with_parent_reference(child.body, parent.number, parent_title)
        )
    except TrackerError as exc:
        degraded("add parent reference", exc)

    return child, False


class StagedMaterializer:
    """Creates the tracker items of a Hierarchy ancestors-first.

    Initiative failures raise ``MaterializationFatal``. A capability or
    deliverable that cannot be created is reported, recorded in ``failed``
    and skipped, together with its descendants (recorded in ``skipped``).
    """

    def __init__(self, tracker: TrackerClient, observer: Observer = null_observer) -> None:
        self.tracker = tracker
        self.observer = observer
        self.failed: list[FailedItem] = []
        self.skipped: list[str] = []

    def _emit(self, kind: EventKind, message: str, level: EventLevel = EventLevel.INFO, **data: Any) -> None:
        self.observer(PipelineEvent(kind=kind, message=message, level=level, data=data))

    async def materialize(
        self,
        hierarchy: Hierarchy,
        resolver: SymbolicReferenceResolver,
    ) -> list[CreatedItem]:
        """Create every item of *hierarchy*, registering handles in *resolver*.

        Raises:
            MaterializationFatal: If an initiative item cannot be created.
        """
        self.failed = []
        self.skipped = []
        created: list[CreatedItem] = []

        # Pass 1: initiatives
        for initiative in hierarchy.initiatives:
            try:
                handle = await self.tracker.create_item(
                    initiative_title(initiative),
                    render_initiative_body(initiative),
                    initiative_labels(initiative),
                )
            except TrackerError as exc:
                raise MaterializationFatal(
                    f'Failed to create initiative issue "{initiative.title}": {exc}', created
                ) from exc
            resolver.register(EntityKind.INITIATIVE, initiative.id, handle)
            created.append(CreatedItem(EntityKind.INITIATIVE, initiative.id, handle))
            self._emit(
                EventKind.ITEM_CREATED,
                f"Created initiative {handle.ref}: {initiative.title}",
                EventLevel.SUCCESS,
                entity_kind=EntityKind.INITIATIVE.value,
                id=initiative.id,
                number=handle.number,
            )

        # Pass 2: capabilities
        for initiative, capability in hierarchy.iter_capabilities():
            parent = resolver.lookup(EntityKind.INITIATIVE, initiative.id)
            if parent is None:
                continue
            try:
                handle = await self.tracker.create_item(
                    capability_title(capability),
                    render_capability_body(initiative, capability, parent.number),
                    capability_labels(capability),
                )
            except TrackerError as exc:
                self._record_failure(EntityKind.CAPABILITY, capability.id, capability.title, exc)
                for deliverable in capability.deliverables:
                    self._record_skip(EntityKind.DELIVERABLE, deliverable.id, capability.id)
                continue

            handle, linked = await link_to_parent(
                self.tracker, parent, initiative.title, handle, self.observer
            )
            resolver.register(EntityKind.CAPABILITY, capability.id, handle)
            created.append(CreatedItem(EntityKind.CAPABILITY, capability.id, handle, linked))
            self._emit(
                EventKind.ITEM_CREATED,
                f"Created capability {handle.ref}: {capability.title}",
                EventLevel.SUCCESS,
                entity_kind=EntityKind.CAPABILITY.value,
                id=capability.id,
                number=handle.number,
            )

        # Pass 3: deliverables
        for _, capability, deliverable in hierarchy.iter_deliverables():
            parent = resolver.lookup(EntityKind.CAPABILITY, capability.id)
            if parent is None:
                continue
            try:
                handle = await self.tracker.create_item(
                    deliverable_title(deliverable),
                    render_deliverable_body(capability, deliverable, parent.number),
                    deliverable_labels(capability),
                )
            except TrackerError as exc:
                self._record_failure(EntityKind.DELIVERABLE, deliverable.id, deliverable.title, exc)
                continue

            handle, linked = await link_to_parent(
                self.tracker, parent, capability.title, handle, self.observer
            )
            resolver.register(EntityKind.DELIVERABLE, deliverable.id, handle)
            created.append(CreatedItem(EntityKind.DELIVERABLE, deliverable.id, handle, linked))
            self._emit(
                EventKind.ITEM_CREATED,
                f"Created deliverable {handle.ref}: {deliverable.title}",
                EventLevel.SUCCESS,
                entity_kind=EntityKind.DELIVERABLE.value,
                id=deliverable.id,
                number=handle.number,
            )

        return created

    def _record_failure(self, kind: EntityKind, symbolic_id: str, title: str, exc: TrackerError) -> None:
        self.failed.append(FailedItem(kind, symbolic_id, title, str(exc)))
        self._emit(
            EventKind.ITEM_FAILED,
            f"Failed to create {kind.value} {symbolic_id} ({title}): {exc}",
            EventLevel.WARNING,
            entity_kind=kind.value,
            id=symbolic_id,
        )

    def _record_skip(self, kind: EntityKind, symbolic_id: str, parent_id: str) -> None:
        self.skipped.append(symbolic_id)
        self._emit(
            EventKind.ITEM_SKIPPED,
            f"Skipped {kind.value} {symbolic_id}: parent {parent_id} was not created",
            EventLevel.WARNING,
            entity_kind=kind.value,
            id=symbolic_id,
        )
