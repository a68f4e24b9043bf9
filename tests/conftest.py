"""Shared pytest fixtures for the prd2issues test suite.

Provides reusable fixtures for:
- Sample PRD documents
- Hierarchy factories (N initiatives x C capabilities x D deliverables)
- An in-memory generation backend with scripted answers
- An in-memory tracker recording every call, with configurable failures
- Mocked httpx clients
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest

from prd2issues.llm_client import LLMResponse
from prd2issues.parser.document import DocumentMetadata, parse_document_text
from prd2issues.planner.models import Hierarchy
from prd2issues.tracker.base import IssueHandle, TrackerError

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_prd() -> str:
    """Path to the sample PRD fixture file."""
    path = FIXTURES_DIR / "sample-prd.md"
    assert path.exists(), f"Sample PRD fixture not found at {path}"
    return str(path)


@pytest.fixture
def sample_prd_text() -> str:
    return (FIXTURES_DIR / "sample-prd.md").read_text(encoding="utf-8")


@pytest.fixture
def document(sample_prd_text: str) -> DocumentMetadata:
    return parse_document_text(sample_prd_text, source="tests/fixtures/sample-prd.md")


# ---------------------------------------------------------------------------
# Hierarchy payloads
# ---------------------------------------------------------------------------

def summary_payload(n: int) -> dict[str, Any]:
    return {
        "id": f"initiative-{n}",
        "title": f"Initiative {n}",
        "description": f"Outcome {n}",
        "objective": f"Why initiative {n} matters",
        "successMetrics": [f"Metric {n}.1", f"Metric {n}.2"],
        "priority": min(n, 5),
    }


def capability_payload(
    n: int,
    m: int,
    deliverables: int = 0,
    dependencies: Optional[list[str]] = None,
    deliverable_dependencies: bool = False,
) -> dict[str, Any]:
    cap_id = f"capability-{n}-{m}"
    payload: dict[str, Any] = {
        "id": cap_id,
        "initiativeId": f"initiative-{n}",
        "title": f"Capability {n}.{m}",
        "description": f"What capability {n}.{m} provides",
        "inputOutputContract": "POST /things -> 201",
        "acceptanceCriteria": ["It works"],
        "edgeConstraints": ["Handles empty input"],
        "priority": 2,
        "complexity": "medium",
        "estimatedHours": 6,
        "dependencies": dependencies or [],
        "aiContext": "Keep it simple",
        "labels": ["feature", "backend"],
        "expandsToDeliverables": deliverables > 0,
        "deliverables": [],
        "checklist": [],
    }
    if deliverables:
        payload["deliverables"] = [
            {
                "id": f"deliverable-{n}-{m}-{k}",
                "capabilityId": cap_id,
                "title": f"Deliverable {n}.{m}.{k}",
                "description": f"Part {k}",
                "completionCriteria": [f"Part {k} done"],
                "dependencies": (
                    [f"deliverable-{n}-{m}-{k - 1}"] if deliverable_dependencies and k > 1 else []
                ),
                "requiresReviewGate": k == 1,
            }
            for k in range(1, deliverables + 1)
        ]
    else:
        payload["checklist"] = [
            {"id": f"task-{n}-{m}-1", "title": "Write it"},
            {"id": f"task-{n}-{m}-2", "title": "Test it", "description": "unit and e2e"},
        ]
    return payload


def hierarchy_payload(initiatives: int = 2, capabilities: int = 2, deliverables: int = 0) -> dict[str, Any]:
    return {
        "title": "TaskFlow",
        "description": "A task tracker",
        "techStack": {"frontend": ["React"], "backend": ["FastAPI"]},
        "initiatives": [
            {
                **summary_payload(n),
                "capabilities": [
                    capability_payload(n, m, deliverables) for m in range(1, capabilities + 1)
                ],
            }
            for n in range(1, initiatives + 1)
        ],
    }


@pytest.fixture
def make_hierarchy() -> Callable[..., Hierarchy]:
    """Factory: ``make_hierarchy(initiatives, capabilities, deliverables)``."""

    def _make(initiatives: int = 2, capabilities: int = 2, deliverables: int = 0) -> Hierarchy:
        return Hierarchy.model_validate(hierarchy_payload(initiatives, capabilities, deliverables))

    return _make


# ---------------------------------------------------------------------------
# Fake generation backend
# ---------------------------------------------------------------------------

def ok(payload: Any, stop_reason: str = "end_turn") -> LLMResponse:
    """A successful backend answer containing *payload* as JSON text."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return LLMResponse(text=text, model="test-model", stop_reason=stop_reason)


Answer = Union[LLMResponse, Callable[[str], LLMResponse]]


class FakeBackend:
    """Scripted ``GenerationBackend``: answers are consumed in order."""

    def __init__(self, answers: list[Answer]) -> None:
        self.answers = list(answers)
        self.prompts: list[str] = []
        self.systems: list[str] = []

    async def generate(self, prompt: str, system: str = "") -> LLMResponse:
        self.prompts.append(prompt)
        self.systems.append(system)
        if not self.answers:
            raise AssertionError("FakeBackend ran out of answers")
        answer = self.answers.pop(0)
        return answer(prompt) if callable(answer) else answer


@pytest.fixture
def fake_backend() -> Callable[[list[Answer]], FakeBackend]:
    return FakeBackend


# ---------------------------------------------------------------------------
# Fake tracker
# ---------------------------------------------------------------------------

class FakeTracker:
    """In-memory ``TrackerClient`` that records every call in order.

    Failure switches:
        fail_titles: Titles whose ``create_item`` raises.
        fail_parent_links: Make every sub-issue link fail with *parent_status*.
        fail_blocking_links: Make every blocking link fail.
        existing_labels: Labels whose creation raises ``already_exists``.
        fail_comments / fail_updates / fail_add_label: Fail those calls.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.issues: dict[int, dict[str, Any]] = {}
        self.labels: set[str] = set()
        self.comments: dict[int, list[str]] = {}
        self.sub_issues: list[tuple[int, int]] = []
        self.blocking: list[tuple[int, int]] = []
        self.fail_titles: set[str] = set()
        self.fail_parent_links = False
        self.parent_status = 404
        self.fail_blocking_links = False
        self.existing_labels: set[str] = set()
        self.fail_comments = False
        self.fail_updates = False
        self.fail_add_label = False
        self._next = 1

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def create_item(self, title: str, body: str, labels: list[str]) -> IssueHandle:
        self.calls.append(("create_item", title))
        if title in self.fail_titles:
            raise TrackerError(f"cannot create {title}", status=500)
        number = self._next
        self._next += 1
        self.issues[number] = {"title": title, "body": body, "labels": list(labels)}
        return IssueHandle(
            number=number,
            id=1000 + number,
            node_id=f"I_{number}",
            url=f"https://github.com/acme/shop/issues/{number}",
            title=title,
            body=body,
        )

    async def update_item_body(self, handle: IssueHandle, body: str) -> IssueHandle:
        self.calls.append(("update_item_body", handle.number))
        if self.fail_updates:
            raise TrackerError("update failed", status=500)
        self.issues[handle.number]["body"] = body
        return handle.model_copy(update={"body": body})

    async def add_label(self, handle: IssueHandle, name: str) -> None:
        self.calls.append(("add_label", (handle.number, name)))
        if self.fail_add_label:
            raise TrackerError("label failed", status=500)
        self.issues[handle.number]["labels"].append(name)

    async def ensure_label_exists(self, name: str, color: str, description: str = "") -> None:
        self.calls.append(("ensure_label_exists", (name, color, description)))
        if name in self.existing_labels or name in self.labels:
            raise TrackerError("already_exists", status=422, already_exists=True)
        self.labels.add(name)

    async def create_parent_child_link(self, parent: IssueHandle, child: IssueHandle) -> None:
        self.calls.append(("create_parent_child_link", (parent.number, child.number)))
        if self.fail_parent_links:
            raise TrackerError("sub-issues unavailable", status=self.parent_status)
        self.sub_issues.append((parent.number, child.number))

    async def create_blocking_link(self, blocker: IssueHandle, blocked: IssueHandle) -> None:
        self.calls.append(("create_blocking_link", (blocker.number, blocked.number)))
        if self.fail_blocking_links:
            raise TrackerError("dependencies unavailable", status=404)
        self.blocking.append((blocker.number, blocked.number))

    async def add_comment(self, handle: IssueHandle, text: str) -> None:
        self.calls.append(("add_comment", handle.number))
        if self.fail_comments:
            raise TrackerError("comment failed", status=500)
        self.comments.setdefault(handle.number, []).append(text)


@pytest.fixture
def tracker() -> FakeTracker:
    return FakeTracker()


# ---------------------------------------------------------------------------
# Mock httpx
# ---------------------------------------------------------------------------

def mock_json_response(data: Any, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data
    response.content = json.dumps(data).encode() if data is not None else b""
    response.raise_for_status = MagicMock()
    return response


def mock_async_client(**methods: Any) -> AsyncMock:
    """AsyncMock usable as ``async with httpx.AsyncClient(...) as client``.

    Keyword arguments set ``client.<name>``; pass an ``AsyncMock``.
    """
    client = AsyncMock()
    for name, value in methods.items():
        setattr(client, name, value)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client
