"""Hierarchy model and decomposition.

Key classes:
    Hierarchy          - Validated Initiative/Capability/Deliverable tree
    Decomposer         - Single-pass and staged generation with failure isolation
    DecompositionResult - Hierarchy plus per-initiative failures and snapshot path
"""

from .decomposer import (
    AllInitiativesFailed,
    DecompositionError,
    DecompositionResult,
    Decomposer,
    GenerationFailed,
    GenerationTruncated,
    InitiativeFailure,
    MalformedOutput,
    SchemaInvalid,
)
from .models import (
    Capability,
    ChecklistItem,
    Complexity,
    Deliverable,
    Hierarchy,
    Initiative,
    InitiativeSummary,
    ProjectOverview,
    TechStack,
)

__all__ = [
    # Models
    "Hierarchy",
    "Initiative",
    "InitiativeSummary",
    "Capability",
    "Deliverable",
    "ChecklistItem",
    "Complexity",
    "ProjectOverview",
    "TechStack",
    # Decomposition
    "Decomposer",
    "DecompositionResult",
    "InitiativeFailure",
    "DecompositionError",
    "GenerationFailed",
    "GenerationTruncated",
    "MalformedOutput",
    "SchemaInvalid",
    "AllInitiativesFailed",
]
