"""Local JSON snapshots of decomposition results.

Three documents share the ``{timestamp, sourceDocument, ...}`` envelope:

* the all-failed snapshot keeps the overview so the run can be diagnosed;
* the partial-success snapshot keeps the generated hierarchy and the
  initiatives that failed;
* a saved structure (``create --output``) keeps a hierarchy for ``apply``.

Both the partial-success snapshot and a saved structure carry a
``hierarchy`` key, so either can be re-applied.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from prd2issues.utils import load_json, save_json, utc_timestamp

from .models import Hierarchy, ProjectOverview

if TYPE_CHECKING:
    from .decomposer import InitiativeFailure


class SnapshotError(Exception):
    """Raised when a saved structure cannot be loaded."""


def _failures_wire(failures: list[InitiativeFailure]) -> list[dict[str, str]]:
    return [failure.to_wire() for failure in failures]


async def write_failure_snapshot(
    path: str | Path,
    source_document: str,
    overview: ProjectOverview,
    failures: list[InitiativeFailure],
) -> Path:
    """Persist the overview and every failure after an all-failed staged run."""
    return await save_json(
        {
            "timestamp": utc_timestamp(),
            "sourceDocument": source_document,
            "overview": overview.to_wire(),
            "failedInitiatives": _failures_wire(failures),
        },
        path,
    )


async def write_partial_snapshot(
    path: str | Path,
    source_document: str,
    hierarchy: Hierarchy,
    failures: list[InitiativeFailure],
) -> Path:
    """Persist the successful part of a staged run plus what failed."""
    return await save_json(
        {
            "timestamp": utc_timestamp(),
            "sourceDocument": source_document,
            "hierarchy": hierarchy.to_wire(),
            "failedInitiatives": _failures_wire(failures),
        },
        path,
    )


async def save_structure(
    path: str | Path,
    source_document: str,
    hierarchy: Hierarchy,
    target_repo: str = "",
) -> Path:
    """Save a hierarchy so it can be materialized later with ``apply``."""
    return await save_json(
        {
            "timestamp": utc_timestamp(),
            "sourceDocument": source_document,
            "targetRepo": target_repo,
            "hierarchy": hierarchy.to_wire(),
        },
        path,
    )


def load_structure(path: str | Path) -> tuple[Hierarchy, dict[str, Any]]:
    """Load a saved structure or partial-success snapshot.

    Returns:
        The validated hierarchy and the remaining envelope fields.

    Raises:
        SnapshotError: If the file is missing, not JSON, has no hierarchy,
            or the hierarchy does not validate.
    """
    file_path = Path(path)
    try:
        data = load_json(file_path)
    except FileNotFoundError as exc:
        raise SnapshotError(f"Structure file not found: {file_path}") from exc
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Structure file is not valid JSON: {exc}") from exc

    if "hierarchy" not in data:
        raise SnapshotError(
            f"{file_path} has no 'hierarchy' key; all-failed snapshots cannot be applied"
        )
    try:
        hierarchy = Hierarchy.model_validate(data["hierarchy"])
    except ValidationError as exc:
        raise SnapshotError(f"Saved hierarchy is invalid: {exc}") from exc

    envelope = {key: value for key, value in data.items() if key != "hierarchy"}
    return hierarchy, envelope
