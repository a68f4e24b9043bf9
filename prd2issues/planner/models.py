"""Pydantic v2 models for the planning hierarchy.

Defines the three-level hierarchy produced by decomposition:

* ``Initiative`` (L1) -- why the work exists (objective, success metrics).
* ``Capability`` (L2) -- what must exist (contract, acceptance criteria).
* ``Deliverable`` (L3) -- optional sequenced sub-unit of a capability.

Entities only know each other by symbolic id. Models are frozen once
validated; the JSON wire format uses camelCase keys.
"""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

INITIATIVE_ID_PATTERN = r"^initiative-\d+$"
CAPABILITY_ID_PATTERN = r"^capability-\d+-\d+$"
DELIVERABLE_ID_PATTERN = r"^deliverable-\d+-\d+-\d+$"


class _Entity(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase JSON structure used by prompts and snapshots."""
        return self.model_dump(mode="json", by_alias=True)


def _duplicates(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for entity_id in ids:
        if entity_id in seen and entity_id not in dupes:
            dupes.append(entity_id)
        seen.add(entity_id)
    return dupes


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Complexity(str, Enum):
    """Rough size of a capability (small: <4h, medium: 4-8h, large: 8-16h)."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


# ---------------------------------------------------------------------------
# Leaf models
# ---------------------------------------------------------------------------

class TechStack(_Entity):
    """Technologies named by the requirements document."""
    frontend: list[str] = Field(default_factory=list)
    backend: list[str] = Field(default_factory=list)
    database: list[str] = Field(default_factory=list)
    testing: list[str] = Field(default_factory=list)
    deployment: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (self.frontend, self.backend, self.database, self.testing, self.deployment)
        )


class ChecklistItem(_Entity):
    """A simple action item rendered inside its capability's body."""
    id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None


class Deliverable(_Entity):
    """L3: a sub-unit of a capability that needs sequencing or a review gate."""
    id: str = Field(..., pattern=DELIVERABLE_ID_PATTERN)
    capability_id: str
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    completion_criteria: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(
        default_factory=list, description="Ids of deliverables this one depends on"
    )
    requires_review_gate: bool = False


# ---------------------------------------------------------------------------
# Capability
# ---------------------------------------------------------------------------

class Capability(_Entity):
    """L2: a scoped feature or contract that must exist at completion.

    Exactly one of ``deliverables`` (when ``expands_to_deliverables``) or
    ``checklist`` carries the work breakdown.
    """
    id: str = Field(..., pattern=CAPABILITY_ID_PATTERN)
    initiative_id: str
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    input_output_contract: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    edge_constraints: list[str] = Field(default_factory=list)
    priority: int = Field(..., ge=1, le=5)
    complexity: Complexity
    estimated_hours: float = Field(..., ge=0, le=40)
    dependencies: list[str] = Field(
        default_factory=list, description="Ids of capabilities (any initiative) this depends on"
    )
    ai_context: str = ""
    labels: list[str] = Field(default_factory=list)
    expands_to_deliverables: bool = False
    deliverables: list[Deliverable] = Field(default_factory=list)
    checklist: list[ChecklistItem] = Field(default_factory=list)

    @field_validator("labels")
    @classmethod
    def _dedupe_labels(cls, labels: list[str]) -> list[str]:
        return list(dict.fromkeys(label for label in labels if label))

    @model_validator(mode="after")
    def _check_breakdown(self) -> "Capability":
        if self.expands_to_deliverables and not self.deliverables:
            raise ValueError(
                f"{self.id}: expandsToDeliverables is true but no deliverables were given"
            )
        if not self.expands_to_deliverables and self.deliverables:
            raise ValueError(
                f"{self.id}: deliverables given but expandsToDeliverables is false"
            )
        for deliverable in self.deliverables:
            if deliverable.capability_id != self.id:
                raise ValueError(
                    f"{deliverable.id}: capabilityId {deliverable.capability_id!r} "
                    f"does not match owning capability {self.id!r}"
                )
        dupes = _duplicates([d.id for d in self.deliverables])
        if dupes:
            raise ValueError(f"{self.id}: duplicate deliverable ids {dupes}")
        return self


# ---------------------------------------------------------------------------
# Initiative
# ---------------------------------------------------------------------------

class InitiativeSummary(_Entity):
    """L1 without its capabilities, as produced by staged phase 1."""
    id: str = Field(..., pattern=INITIATIVE_ID_PATTERN)
    title: str = Field(..., min_length=1)
    description: str = ""
    objective: str = Field(..., min_length=1)
    success_metrics: list[str] = Field(default_factory=list)
    priority: int = Field(..., ge=1, le=5)

    @property
    def number(self) -> str:
        """The ``<n>`` of ``initiative-<n>``."""
        return self.id.split("-", 1)[1]


class Initiative(InitiativeSummary):
    """L1: a rationale-bearing outcome with at least one capability."""
    capabilities: list[Capability] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_capabilities(self) -> "Initiative":
        for capability in self.capabilities:
            if capability.initiative_id != self.id:
                raise ValueError(
                    f"{capability.id}: initiativeId {capability.initiative_id!r} "
                    f"does not match owning initiative {self.id!r}"
                )
        dupes = _duplicates([c.id for c in self.capabilities])
        if dupes:
            raise ValueError(f"{self.id}: duplicate capability ids {dupes}")
        return self

    @classmethod
    def from_summary(cls, summary: InitiativeSummary, capabilities: list[Any]) -> "Initiative":
        """Attach generated capabilities (models or raw dicts) to a summary."""
        return cls.model_validate({**summary.to_wire(), "capabilities": capabilities})


# ---------------------------------------------------------------------------
# Top-level structures
# ---------------------------------------------------------------------------

class ProjectOverview(_Entity):
    """Phase-1 result of staged decomposition."""
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    tech_stack: TechStack = Field(default_factory=TechStack)
    initiatives: list[InitiativeSummary] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_ids(self) -> "ProjectOverview":
        dupes = _duplicates([i.id for i in self.initiatives])
        if dupes:
            raise ValueError(f"duplicate initiative ids {dupes}")
        return self

    @property
    def initiative_ids(self) -> list[str]:
        return [i.id for i in self.initiatives]


class HierarchyCounts(BaseModel):
    initiatives: int = 0
    capabilities: int = 0
    deliverables: int = 0
    checklist_items: int = 0

    @property
    def tracked_items(self) -> int:
        """Number of tracker items a full materialization creates."""
        return self.initiatives + self.capabilities + self.deliverables


class Hierarchy(_Entity):
    """A fully generated, validated plan ready for materialization."""
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    tech_stack: TechStack = Field(default_factory=TechStack)
    initiatives: list[Initiative] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_ids(self) -> "Hierarchy":
        dupes = _duplicates([i.id for i in self.initiatives])
        if dupes:
            raise ValueError(f"duplicate initiative ids {dupes}")
        # Tracker handles are keyed by id across the whole run.
        dupes = _duplicates([c.id for _, c in self.iter_capabilities()])
        if dupes:
            raise ValueError(f"capability ids used by more than one initiative {dupes}")
        dupes = _duplicates([d.id for _, _, d in self.iter_deliverables()])
        if dupes:
            raise ValueError(f"deliverable ids used by more than one capability {dupes}")
        return self

    def iter_capabilities(self) -> Iterator[tuple[Initiative, Capability]]:
        """Capabilities in initiative order, then declared order."""
        for initiative in self.initiatives:
            for capability in initiative.capabilities:
                yield initiative, capability

    def iter_deliverables(self) -> Iterator[tuple[Initiative, Capability, Deliverable]]:
        """Deliverables of expanding capabilities, in declared order."""
        for initiative, capability in self.iter_capabilities():
            if not capability.expands_to_deliverables:
                continue
            for deliverable in capability.deliverables:
                yield initiative, capability, deliverable

    def counts(self) -> HierarchyCounts:
        counts = HierarchyCounts(initiatives=len(self.initiatives))
        for _, capability in self.iter_capabilities():
            counts.capabilities += 1
            counts.deliverables += len(capability.deliverables)
            counts.checklist_items += len(capability.checklist)
        return counts
