"""Issue titles, labels and markdown bodies for hierarchy entities.

Bodies are rendered from the Jinja2 templates in ``tracker/templates``.
Their section order is relied upon by people and tools reading the
issues, so every renderer here is deterministic: the same entity and
parent number always give the same text.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from prd2issues.planner.models import Capability, Deliverable, HierarchyCounts, Initiative

_TEMPLATE_DIR = Path(__file__).parent / "templates"

PARENT_LABEL_COLOR = "E4E4E4"

INITIATIVE_TYPE_LABEL = "type:initiative"
CAPABILITY_TYPE_LABEL = "type:capability"
DELIVERABLE_TYPE_LABEL = "type:deliverable"


def _hours_filter(value: float) -> str:
    """``6.0`` -> ``"6"``, ``2.5`` -> ``"2.5"``."""
    return f"{value:g}"


def _create_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
    )
    env.filters["hours"] = _hours_filter
    return env


_env = _create_environment()


def _render(template_name: str, **context: object) -> str:
    return _env.get_template(template_name).render(**context).rstrip("\n")


# ---------------------------------------------------------------------------
# Titles and labels
# ---------------------------------------------------------------------------

def initiative_title(initiative: Initiative) -> str:
    return f"[INITIATIVE] {initiative.title}"


def capability_title(capability: Capability) -> str:
    return f"[CAPABILITY] {capability.title}"


def deliverable_title(deliverable: Deliverable) -> str:
    return f"[DELIVERABLE] {deliverable.title}"


def _unique(labels: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(label for label in labels if label))


def initiative_labels(initiative: Initiative) -> list[str]:
    return [INITIATIVE_TYPE_LABEL, initiative.id]


def capability_labels(capability: Capability) -> list[str]:
    return _unique(
        [CAPABILITY_TYPE_LABEL, capability.initiative_id, capability.complexity.value, *capability.labels]
    )


def deliverable_labels(capability: Capability) -> list[str]:
    return [DELIVERABLE_TYPE_LABEL, capability.initiative_id]


def parent_label(parent_number: int) -> str:
    return f"parent:#{parent_number}"


# ---------------------------------------------------------------------------
# Bodies
# ---------------------------------------------------------------------------

def _initiative_counts(initiative: Initiative) -> HierarchyCounts:
    counts = HierarchyCounts(initiatives=1, capabilities=len(initiative.capabilities))
    for capability in initiative.capabilities:
        counts.deliverables += len(capability.deliverables)
        counts.checklist_items += len(capability.checklist)
    return counts


def render_initiative_body(initiative: Initiative) -> str:
    """Objective, description, success metrics, capability summary, footer."""
    return _render("initiative.md.j2", initiative=initiative, counts=_initiative_counts(initiative))


def render_capability_body(
    initiative: Initiative,
    capability: Capability,
    initiative_number: int,
) -> str:
    """Body of a capability issue; ``initiative_number`` is the parent issue number."""
    return _render(
        "capability.md.j2",
        initiative=initiative,
        capability=capability,
        initiative_number=initiative_number,
    )


def render_deliverable_body(
    capability: Capability,
    deliverable: Deliverable,
    capability_number: int,
) -> str:
    return _render(
        "deliverable.md.j2",
        capability=capability,
        deliverable=deliverable,
        capability_number=capability_number,
    )


def with_parent_reference(body: str, parent_number: int, parent_title: str) -> str:
    """Prefix a body with the textual parent link used when sub-issues are unavailable."""
    return f"**Parent Issue**: #{parent_number} {parent_title}\n\n---\n\n{body}"


def dependency_comment(references: list[str], noun: str, linked: bool) -> str:
    """Comment listing the issues an item depends on.

    Args:
        references: ``#<number>`` references in dependency order.
        noun: ``"capability"`` or ``"deliverable"``.
        linked: Whether at least one native blocking link was created.
    """
    joined = ", ".join(references)
    if linked:
        return f"**Dependencies** (also linked as 'blocks' relationships): {joined}"
    return f"**Dependencies**: This {noun} depends on {joined}"
