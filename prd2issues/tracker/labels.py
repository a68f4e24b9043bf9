"""Repository label set.

Creates the labels the generated issues use before any issue is created:
the hierarchy type labels, generic type and area labels, complexity labels,
one label per initiative id and any custom labels the capabilities name.
"""

from __future__ import annotations

from pydantic import BaseModel

from prd2issues.events import EventKind, EventLevel, Observer, PipelineEvent, null_observer

from .base import TrackerError
from .github_client import GitHubClient
from .pacing import PacedTracker


class LabelDefinition(BaseModel):
    name: str
    color: str
    description: str = ""


DEFAULT_LABELS: list[LabelDefinition] = [
    # Hierarchy
    LabelDefinition(name="type:initiative", color="8B5CF6", description="L1 Initiative - WHY (objective, outcome, metrics)"),
    LabelDefinition(name="type:capability", color="10B981", description="L2 Capability - WHAT (scope, contracts, boundaries)"),
    LabelDefinition(name="type:deliverable", color="3B82F6", description="L3 Deliverable - Sub-issue with review gate"),
    # Type
    LabelDefinition(name="feature", color="0E8A16", description="New feature or capability"),
    LabelDefinition(name="bug", color="D73A4A", description="Something is not working"),
    LabelDefinition(name="enhancement", color="A2EEEF", description="Improvement to existing feature"),
    # Area
    LabelDefinition(name="backend", color="0052CC", description="Backend-related work"),
    LabelDefinition(name="frontend", color="FBCA04", description="Frontend-related work"),
    LabelDefinition(name="database", color="5319E7", description="Database-related work"),
    LabelDefinition(name="testing", color="BFD4F2", description="Testing-related work"),
    LabelDefinition(name="documentation", color="0075CA", description="Documentation improvements"),
    # Complexity
    LabelDefinition(name="small", color="C2E0C6", description="Small capability (<4 hours)"),
    LabelDefinition(name="medium", color="FEF2C0", description="Medium capability (4-8 hours)"),
    LabelDefinition(name="large", color="F9C5D1", description="Large capability (8-16 hours)"),
]


def generate_color(text: str) -> str:
    """Deterministic 6-digit hex color for a label name."""
    value = 0
    for char in text:
        value = (ord(char) + ((value << 5) - value)) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 1 << 32
    return format(abs(value), "x")[:6].ljust(6, "0").upper()


class LabelManager:
    """Ensures every label the generated issues reference exists."""

    def __init__(
        self,
        client: GitHubClient | PacedTracker,
        default_labels: bool = True,
        observer: Observer = null_observer,
    ) -> None:
        self.client = client
        self.default_labels = default_labels
        self.observer = observer

    def plan(self, custom_labels: list[str] | None = None) -> list[LabelDefinition]:
        """The labels ``ensure_labels`` would create, defaults first."""
        labels = list(DEFAULT_LABELS) if self.default_labels else []
        known = {label.name.lower() for label in labels}
        for name in custom_labels or []:
            if name and name.lower() not in known:
                labels.append(
                    LabelDefinition(name=name, color=generate_color(name), description=f"Custom label: {name}")
                )
                known.add(name.lower())
        return labels

    async def ensure_labels(self, custom_labels: list[str] | None = None) -> int:
        """Create missing labels and return how many were created.

        Raises:
            TrackerError: If the existing labels cannot be listed.
        """
        wanted = self.plan(custom_labels)
        if not wanted:
            return 0

        existing = {name.lower() for name in await self.client.list_labels()}
        created = 0
        for label in wanted:
            if label.name.lower() in existing:
                continue
            try:
                await self.client.ensure_label_exists(label.name, label.color, label.description)
            except TrackerError as exc:
                if not exc.already_exists:
                    self.observer(PipelineEvent(
                        kind=EventKind.BEST_EFFORT_DEGRADED,
                        message=f"Failed to create label '{label.name}': {exc}",
                        level=EventLevel.WARNING,
                    ))
                continue
            created += 1

        self.observer(PipelineEvent(
            kind=EventKind.MESSAGE,
            message=f"Labels configured ({len(wanted)} labels, {created} created)",
            level=EventLevel.SUCCESS,
        ))
        return created
