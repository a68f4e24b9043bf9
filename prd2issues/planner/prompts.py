"""Prompt builders for hierarchy decomposition.

Three prompts share a common document header and differ in the JSON
contract they ask for:

* single pass -- the whole hierarchy in one answer;
* overview -- staged phase 1, initiative summaries only;
* capabilities -- staged phase 2, the capability list of one initiative.

The example payloads are built as Python structures and dumped with
``json.dumps`` so the documented keys always match the wire format of
``prd2issues.planner.models``.
"""

from __future__ import annotations

import json
import textwrap
from typing import TYPE_CHECKING

from .models import InitiativeSummary

if TYPE_CHECKING:
    from prd2issues.parser.document import DocumentMetadata

SYSTEM_PROMPT = (
    "You are an expert software project planner. You answer with a single "
    "JSON document and nothing else."
)

_EXAMPLE_TECH_STACK = {
    "frontend": ["technology1", "technology2"],
    "backend": ["technology1"],
    "database": ["database1"],
    "testing": ["test-framework"],
    "deployment": ["platform"],
}

_WHAT_NOT_HOW = textwrap.dedent("""\
    # Critical Guidelines

    - **DO NOT** specify file paths or step-by-step implementation instructions
    - **DO NOT** prescribe specific code patterns or libraries in aiContext
    - **DO** focus on WHAT needs to exist and WHY it is needed
    - **DO** define clear input/output contracts at capability boundaries
    - **DO** write outcome-focused, observable acceptance criteria
    - **DO** set expandsToDeliverables: true sparingly, only when a capability needs
      review gates or sequencing; otherwise give 2-5 items in "checklist"
    - **DO** keep aiContext high-level (domain concepts and architectural patterns)
    """)


def _document_header(document: DocumentMetadata) -> str:
    return "\n".join([
        "# PRD Content",
        "",
        f"Title: {document.title}",
        f"Description: {document.description}",
        "",
        document.raw_text.strip(),
    ])


def _example_capabilities(n: str, initiative_id: str, priority: int) -> list[dict]:
    return [
        {
            "id": f"capability-{n}-1",
            "initiativeId": initiative_id,
            "title": "Capability Title (WHAT needs to exist)",
            "description": "WHAT this capability provides and its scope boundaries",
            "inputOutputContract": "API contracts, data contracts or system boundaries",
            "acceptanceCriteria": ["Observable outcome 1", "Observable outcome 2"],
            "edgeConstraints": ["Edge case or non-functional requirement"],
            "priority": priority,
            "complexity": "medium",
            "estimatedHours": 6,
            "dependencies": [],
            "aiContext": "High-level domain patterns and architectural guidance",
            "labels": ["feature", "backend"],
            "expandsToDeliverables": False,
            "deliverables": [],
            "checklist": [
                {"id": f"task-{n}-1-1", "title": "Simple action item"},
                {"id": f"task-{n}-1-2", "title": "Another action item"},
            ],
        },
        {
            "id": f"capability-{n}-2",
            "initiativeId": initiative_id,
            "title": "Complex Capability Requiring Sequenced Deliverables",
            "description": "Needs sequential deliverables with review gates",
            "inputOutputContract": "API contracts",
            "acceptanceCriteria": ["Outcome 1"],
            "edgeConstraints": [],
            "priority": priority,
            "complexity": "large",
            "estimatedHours": 14,
            "dependencies": [f"capability-{n}-1"],
            "aiContext": "High-level guidance",
            "labels": ["feature"],
            "expandsToDeliverables": True,
            "deliverables": [
                {
                    "id": f"deliverable-{n}-2-1",
                    "capabilityId": f"capability-{n}-2",
                    "title": "First Deliverable",
                    "description": "WHAT must be delivered first",
                    "completionCriteria": ["Observable outcome"],
                    "dependencies": [],
                    "requiresReviewGate": True,
                },
            ],
            "checklist": [],
        },
    ]


def _example_summary() -> dict:
    return {
        "id": "initiative-1",
        "title": "Initiative Title",
        "description": "What this initiative accomplishes",
        "objective": "WHY we're doing this - the business value and user outcome",
        "successMetrics": ["Measurable outcome 1", "Measurable outcome 2"],
        "priority": 1,
    }


def build_single_pass_prompt(document: DocumentMetadata) -> str:
    """Prompt asking for the complete hierarchy in one answer."""
    example = {
        "title": "Project Title",
        "description": "Brief project description",
        "techStack": _EXAMPLE_TECH_STACK,
        "initiatives": [
            {**_example_summary(), "capabilities": _example_capabilities("1", "initiative-1", 1)},
        ],
    }
    instructions = textwrap.dedent("""\
        # Instructions

        Decompose the PRD into a three-level hierarchy. Define WHAT needs to be
        built and WHY, not HOW to implement it.

        1. **L1 - Initiatives**: identify 3-6 initiatives that explain WHY the work
           exists (objective, success metrics, business value).
        2. **L2 - Capabilities**: for each initiative identify 3-8 capabilities that
           define WHAT must exist (scope, input/output contract, acceptance criteria).
        3. **L3 - Deliverables**: only for capabilities that need sequencing or a
           review gate (expandsToDeliverables: true).
        4. **Dependencies**: list capability ids a capability depends on; they may
           point at capabilities of other initiatives.
        5. **Complexity**: small (<4h), medium (4-8h) or large (8-16h).

        Generate ids in this format:
        - Initiatives: "initiative-{n}"
        - Capabilities: "capability-{n}-{m}"
        - Deliverables: "deliverable-{n}-{m}-{k}"
        - Checklist items: "task-{n}-{m}-{k}"
        """)
    return "\n".join([
        "Your task is to analyze a Product Requirements Document (PRD) and "
        "decompose it into initiatives (L1), capabilities (L2) and deliverables (L3).",
        "",
        _document_header(document),
        "",
        instructions,
        "# Output Format",
        "",
        "Return ONLY valid JSON matching this structure (no markdown, no explanations):",
        "",
        json.dumps(example, indent=2),
        "",
        _WHAT_NOT_HOW,
        "Return ONLY the JSON, nothing else.",
    ])


def build_overview_prompt(document: DocumentMetadata) -> str:
    """Prompt for staged phase 1: the overview and initiative summaries."""
    example = {
        "title": "Project Title",
        "description": "Brief project description",
        "techStack": _EXAMPLE_TECH_STACK,
        "initiatives": [_example_summary()],
    }
    instructions = textwrap.dedent("""\
        # Instructions

        1. Identify 3-6 major initiatives. Each answers: WHY are we doing this?
        2. For each initiative give a unique id ("initiative-{n}"), an
           outcome-focused title, a description, an objective explaining the
           business value, measurable success metrics and a priority
           (1 = critical to 5 = nice-to-have).
        3. Order initiatives by priority, most critical first.
        4. Do NOT generate capabilities yet; that happens in a separate step.
        """)
    return "\n".join([
        "Your task is to analyze a Product Requirements Document (PRD) and "
        "identify the major initiatives (L1) that define WHY it is being built.",
        "",
        _document_header(document),
        "",
        instructions,
        "# Output Format",
        "",
        "Return ONLY valid JSON matching this structure (no markdown, no explanations):",
        "",
        json.dumps(example, indent=2),
        "",
        "Return ONLY the JSON, nothing else.",
    ])


def build_capabilities_prompt(
    document: DocumentMetadata,
    summary: InitiativeSummary,
    all_initiative_ids: list[str],
) -> str:
    """Prompt for staged phase 2: the capabilities of one initiative.

    The full document is repeated in every request, together with the list
    of all initiative ids so cross-initiative dependencies can be named.
    """
    n = summary.number
    initiative = "\n".join([
        "# Initiative to Decompose",
        "",
        f"ID: {summary.id}",
        f"Title: {summary.title}",
        f"Description: {summary.description}",
        f"Objective: {summary.objective}",
        f"Success Metrics: {', '.join(summary.success_metrics)}",
        f"Priority: {summary.priority}",
        "",
        "# Available Initiative IDs (for cross-initiative dependencies)",
        "",
        ", ".join(all_initiative_ids),
    ])
    instructions = textwrap.dedent(f"""\
        # Instructions

        1. Break this initiative into 3-8 capabilities, each defining WHAT must
           exist at completion.
        2. Every capability carries initiativeId "{summary.id}".
        3. Dependencies are capability ids from this initiative OR another one
           (format "capability-{{initiative}}-{{number}}").
        4. Estimate complexity: small (<4h), medium (4-8h) or large (8-16h).

        Generate ids in this format:
        - Capabilities: "capability-{n}-{{number}}"
        - Deliverables: "deliverable-{n}-{{capability-number}}-{{number}}"
        - Checklist items: "task-{n}-{{capability-number}}-{{number}}"
        """)
    return "\n".join([
        "Your task is to break down one initiative into capabilities (L2) that "
        "define WHAT needs to exist.",
        "",
        _document_header(document),
        "",
        initiative,
        "",
        instructions,
        "# Output Format",
        "",
        "Return ONLY a valid JSON array of capabilities (no markdown, no explanations):",
        "",
        json.dumps(_example_capabilities(n, summary.id, summary.priority), indent=2),
        "",
        _WHAT_NOT_HOW,
        "Return ONLY the JSON array, nothing else.",
    ])
