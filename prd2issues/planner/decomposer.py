"""Decomposition of a requirements document into a validated Hierarchy.

Two modes are supported:

* **single pass** -- one generation request for the whole hierarchy. Cheap,
  but a large document can exhaust the output budget, in which case the
  run fails with ``GenerationTruncated``.
* **staged** -- phase 1 generates the project overview with initiative
  summaries only; phase 2 generates the capability list of each initiative
  in its own request. A phase-2 failure only loses that initiative. When
  some initiatives fail, the rest is returned and a partial-success
  snapshot is written; when all fail, ``AllInitiativesFailed`` is raised
  after writing the all-failed snapshot.

The generation backend is any object with an async
``generate(prompt, system="")`` returning an ``LLMResponse``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Optional, Protocol

from pydantic import Field, TypeAdapter, ValidationError

from prd2issues.events import EventKind, EventLevel, Observer, PipelineEvent, null_observer
from prd2issues.llm_client import LLMResponse
from prd2issues.utils import first_line

from .models import Capability, Hierarchy, Initiative, InitiativeSummary, ProjectOverview
from .prompts import (
    SYSTEM_PROMPT,
    build_capabilities_prompt,
    build_overview_prompt,
    build_single_pass_prompt,
)
from .snapshots import write_failure_snapshot, write_partial_snapshot

if TYPE_CHECKING:
    from prd2issues.parser.document import DocumentMetadata

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)

_CAPABILITY_LIST = TypeAdapter(Annotated[list[Capability], Field(min_length=1)])


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class DecompositionError(Exception):
    """Base class for every decomposition failure."""


class GenerationFailed(DecompositionError):
    """The backend could not produce an answer (transport or API error)."""


class GenerationTruncated(DecompositionError):
    """The backend stopped because the output budget ran out."""


class MalformedOutput(DecompositionError):
    """The answer is not parseable JSON."""


class SchemaInvalid(DecompositionError):
    """The answer is JSON but does not satisfy the hierarchy schema."""


class AllInitiativesFailed(DecompositionError):
    """Every initiative of a staged run failed in phase 2."""

    def __init__(
        self,
        failures: list[InitiativeFailure],
        snapshot_path: Optional[Path] = None,
    ) -> None:
        self.failures = failures
        self.snapshot_path = snapshot_path
        where = f" (details saved to {snapshot_path})" if snapshot_path else ""
        super().__init__(
            f"All {len(failures)} initiatives failed to generate capabilities{where}"
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class GenerationBackend(Protocol):
    async def generate(self, prompt: str, system: str = "") -> LLMResponse: ...


@dataclass(frozen=True)
class InitiativeFailure:
    """One initiative whose capability generation failed."""

    initiative_id: str
    initiative_title: str
    error: str

    def to_wire(self) -> dict[str, str]:
        return {
            "initiativeId": self.initiative_id,
            "initiativeTitle": self.initiative_title,
            "error": self.error,
        }


@dataclass
class DecompositionResult:
    hierarchy: Hierarchy
    failures: list[InitiativeFailure] = field(default_factory=list)
    attempted: int = 0
    snapshot_path: Optional[Path] = None

    @property
    def partial(self) -> bool:
        return bool(self.failures)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def extract_json(text: str) -> str:
    """Unwrap a fenced ```json block if present, else return the stripped text."""
    match = _FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def _parse_answer(response: LLMResponse, what: str) -> Any:
    if not response.success:
        raise GenerationFailed(f"Generating {what} failed: {response.error}")
    if response.truncated:
        raise GenerationTruncated(
            f"The answer for {what} was truncated at the output token limit. "
            "Re-run with --staged to generate one initiative per request, "
            "or raise ANTHROPIC_MAX_TOKENS."
        )
    try:
        return json.loads(extract_json(response.text))
    except json.JSONDecodeError as exc:
        raise MalformedOutput(f"The answer for {what} is not valid JSON: {exc}") from exc


def _schema_error(what: str, exc: ValidationError) -> SchemaInvalid:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
        for err in exc.errors()[:5]
    )
    more = f" (+{exc.error_count() - 5} more)" if exc.error_count() > 5 else ""
    return SchemaInvalid(f"The answer for {what} does not match the schema: {problems}{more}")


def _entity_ids(initiative: Initiative) -> set[str]:
    ids: set[str] = set()
    for capability in initiative.capabilities:
        ids.add(capability.id)
        ids.update(d.id for d in capability.deliverables)
    return ids


# ---------------------------------------------------------------------------
# Decomposer
# ---------------------------------------------------------------------------

class Decomposer:
    """Drives generation and turns answers into validated models.

    Args:
        backend: Generation backend (usually ``AnthropicClient``).
        observer: Receives ``PipelineEvent``s; the decomposer never prints.
        failure_snapshot_path: Where the all-failed snapshot is written.
        partial_snapshot_path: Where the partial-success snapshot is written.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        observer: Observer = null_observer,
        failure_snapshot_path: str | Path = ".prd2issues/failure.json",
        partial_snapshot_path: str | Path = ".prd2issues/partial.json",
    ) -> None:
        self.backend = backend
        self.observer = observer
        self.failure_snapshot_path = Path(failure_snapshot_path)
        self.partial_snapshot_path = Path(partial_snapshot_path)

    def _emit(self, kind: EventKind, message: str, level: EventLevel = EventLevel.INFO, **data: Any) -> None:
        self.observer(PipelineEvent(kind=kind, message=message, level=level, data=data))

    # -- single pass ---------------------------------------------------

    async def decompose_single_pass(self, document: DocumentMetadata) -> DecompositionResult:
        """Generate the whole hierarchy with one request.

        Raises:
            GenerationFailed, GenerationTruncated, MalformedOutput, SchemaInvalid
        """
        response = await self.backend.generate(build_single_pass_prompt(document), system=SYSTEM_PROMPT)
        raw = _parse_answer(response, "the hierarchy")
        try:
            hierarchy = Hierarchy.model_validate(raw)
        except ValidationError as exc:
            raise _schema_error("the hierarchy", exc) from exc

        counts = hierarchy.counts()
        self._emit(
            EventKind.OVERVIEW_GENERATED,
            f"Generated {counts.initiatives} initiatives, {counts.capabilities} capabilities, "
            f"{counts.deliverables} deliverables",
            EventLevel.SUCCESS,
            initiatives=counts.initiatives,
        )
        return DecompositionResult(hierarchy=hierarchy, attempted=counts.initiatives)

    # -- staged --------------------------------------------------------

    async def generate_overview(self, document: DocumentMetadata) -> ProjectOverview:
        """Staged phase 1: the overview with initiative summaries."""
        response = await self.backend.generate(build_overview_prompt(document), system=SYSTEM_PROMPT)
        raw = _parse_answer(response, "the project overview")
        try:
            overview = ProjectOverview.model_validate(raw)
        except ValidationError as exc:
            raise _schema_error("the project overview", exc) from exc

        self._emit(
            EventKind.OVERVIEW_GENERATED,
            f"Identified {len(overview.initiatives)} initiatives",
            EventLevel.SUCCESS,
            initiatives=overview.initiative_ids,
        )
        return overview

    async def generate_capabilities(
        self,
        document: DocumentMetadata,
        summary: InitiativeSummary,
        all_initiative_ids: list[str],
    ) -> Initiative:
        """Staged phase 2 for one initiative: attach its generated capabilities."""
        what = f"the capabilities of {summary.id}"
        prompt = build_capabilities_prompt(document, summary, all_initiative_ids)
        response = await self.backend.generate(prompt, system=SYSTEM_PROMPT)
        raw = _parse_answer(response, what)
        try:
            capabilities = _CAPABILITY_LIST.validate_python(raw)
            return Initiative.from_summary(summary, capabilities)
        except ValidationError as exc:
            raise _schema_error(what, exc) from exc

    async def decompose_staged(self, document: DocumentMetadata) -> DecompositionResult:
        """Two-phase decomposition with per-initiative failure isolation.

        Raises:
            DecompositionError: If phase 1 fails.
            AllInitiativesFailed: If every initiative fails in phase 2.
        """
        overview = await self.generate_overview(document)
        all_ids = overview.initiative_ids

        successes: list[Initiative] = []
        failures: list[InitiativeFailure] = []
        taken_ids: set[str] = set()
        for index, summary in enumerate(overview.initiatives, start=1):
            self._emit(
                EventKind.MESSAGE,
                f"[{index}/{len(all_ids)}] Generating capabilities for {summary.title}",
                EventLevel.DEBUG,
            )
            try:
                initiative = await self.generate_capabilities(document, summary, all_ids)
                collisions = sorted(_entity_ids(initiative) & taken_ids)
                if collisions:
                    raise SchemaInvalid(
                        f"The capabilities of {summary.id} reuse ids of another initiative: "
                        f"{', '.join(collisions)}"
                    )
            except DecompositionError as exc:
                failures.append(InitiativeFailure(summary.id, summary.title, first_line(str(exc))))
                self._emit(
                    EventKind.INITIATIVE_FAILED,
                    f"{summary.id} ({summary.title}) failed: {first_line(str(exc))}",
                    EventLevel.WARNING,
                    initiative_id=summary.id,
                )
                continue
            successes.append(initiative)
            taken_ids |= _entity_ids(initiative)
            self._emit(
                EventKind.INITIATIVE_GENERATED,
                f"{summary.id}: {len(initiative.capabilities)} capabilities",
                EventLevel.SUCCESS,
                initiative_id=summary.id,
            )

        if not successes:
            path = await write_failure_snapshot(
                self.failure_snapshot_path, document.source, overview, failures
            )
            self._emit(EventKind.SNAPSHOT_WRITTEN, f"Failure details saved to {path}", path=str(path))
            raise AllInitiativesFailed(failures, path)

        hierarchy = Hierarchy(
            title=overview.title,
            description=overview.description,
            tech_stack=overview.tech_stack,
            initiatives=successes,
        )
        result = DecompositionResult(hierarchy=hierarchy, failures=failures, attempted=len(all_ids))
        if failures:
            result.snapshot_path = await write_partial_snapshot(
                self.partial_snapshot_path, document.source, hierarchy, failures
            )
            self._emit(
                EventKind.SNAPSHOT_WRITTEN,
                f"Partial structure saved to {result.snapshot_path}",
                EventLevel.WARNING,
                path=str(result.snapshot_path),
            )
        return result
