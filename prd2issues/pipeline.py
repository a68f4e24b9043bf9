"""prd2issues pipeline orchestrator and CLI.

Turns a requirements document into GitHub issues in six steps:

Step 1: PARSE       -- Read and validate the PRD, extract metadata.
Step 2: DECOMPOSE   -- Generate the Initiative/Capability/Deliverable hierarchy.
Step 3: REPOSITORY  -- Get or create the target repository, ensure labels.
Step 4: MATERIALIZE -- Create issues ancestors-first with parent links.
Step 5: LINK        -- Link dependency edges and post dependency comments.
Step 6: PROJECT     -- Add the created issues to a GitHub Projects board.

``apply`` skips steps 1-2 and materializes a saved structure instead.

Usage::

    prd2issues create requirements.md --repo my-project --staged
    prd2issues create requirements.md --repo my-project --dry-run --output plan.json
    prd2issues apply plan.json --repo my-project --project 4
    python -m prd2issues.pipeline create requirements.md --repo my-project
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path
from typing import Any, Optional

from rich.panel import Panel
from rich.tree import Tree

from prd2issues.config import Config, ConfigError
from prd2issues.events import EventLevel
from prd2issues.llm_client import AnthropicClient
from prd2issues.parser.document import DocumentError, DocumentMetadata, load_document
from prd2issues.planner.decomposer import (
    AllInitiativesFailed,
    Decomposer,
    DecompositionError,
    DecompositionResult,
    GenerationBackend,
)
from prd2issues.planner.models import Hierarchy
from prd2issues.planner.snapshots import SnapshotError, load_structure, save_structure
from prd2issues.tracker.base import TrackerClient, TrackerError
from prd2issues.tracker.github_client import GitHubClient
from prd2issues.tracker.labels import LabelManager
from prd2issues.tracker.linker import DependencyLinker, LinkReport
from prd2issues.tracker.materializer import CreatedItem, MaterializationError, StagedMaterializer
from prd2issues.tracker.pacing import PacedTracker
from prd2issues.tracker.projects import ProjectError, ProjectManager
from prd2issues.tracker.repos import RepoManager, RepositoryError, RepositoryInfo
from prd2issues.tracker.resolver import EntityKind, SymbolicReferenceResolver
from prd2issues.utils import (
    ConsoleReporter,
    console,
    create_progress,
    format_duration,
    print_error,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
    save_json,
    utc_timestamp,
)

STEP_NAMES: dict[int, str] = {
    1: "Parse",
    2: "Decompose",
    3: "Repository",
    4: "Materialize",
    5: "Link",
    6: "Project",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PipelineError(Exception):
    """Raised when a pipeline step fails irrecoverably."""

    def __init__(self, step: int, message: str) -> None:
        self.step = step
        super().__init__(f"Step {step} ({STEP_NAMES.get(step, '?')}): {message}")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Pipeline:
    """Drives decomposition and materialization for one target repository.

    Attributes:
        config: Global configuration.
        reporter: Observer receiving every core event.
        state: Summary of the run, returned by ``run_create``/``run_apply``.
    """

    def __init__(
        self,
        config: Config,
        reporter: Optional[ConsoleReporter] = None,
        backend: Optional[GenerationBackend] = None,
        github: Optional[GitHubClient] = None,
        tracker: Optional[TrackerClient] = None,
    ) -> None:
        self.config = config
        self.reporter = reporter or ConsoleReporter(
            verbose=config.output.verbose, log_file=config.output.log_file
        )
        self.backend = backend or AnthropicClient(
            api_key=config.anthropic.api_key,
            model=config.anthropic.model,
            max_tokens=config.anthropic.max_tokens,
            temperature=config.anthropic.temperature,
            base_url=config.anthropic.base_url,
            timeout=config.anthropic.timeout,
        )
        self.github = github or GitHubClient(
            token=config.github.token,
            owner=config.github.owner,
            api_url=config.github.api_url,
            timeout=config.github.timeout,
        )
        self.tracker: TrackerClient = tracker or PacedTracker(
            self.github, delay=config.github.request_delay
        )
        self.state: dict[str, Any] = {"started_at": utc_timestamp(), "success": False}

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_create(
        self,
        prd_path: str | Path,
        repo: str,
        staged: bool = False,
        output: Optional[str | Path] = None,
    ) -> dict[str, Any]:
        """Parse, decompose and (unless dry-run) materialize a PRD.

        Raises:
            PipelineError: On any fatal failure.
        """
        started = time.monotonic()
        dry_run = self.config.output.dry_run
        console.print(
            Panel(
                f"[bold bright_cyan]prd2issues[/bold bright_cyan]\n"
                f"PRD        : {prd_path}\n"
                f"Repository : {self.config.github.owner or '?'}/{repo}\n"
                f"Mode       : {'staged' if staged else 'single pass'}"
                f"{' (dry run)' if dry_run else ''}",
                title="[bold]Create[/bold]",
                border_style="bright_cyan",
            )
        )

        print_step_header(1, STEP_NAMES[1])
        document = await self._parse(prd_path)

        print_step_header(2, STEP_NAMES[2])
        result = await self._decompose(document, staged)
        hierarchy = result.hierarchy

        if output:
            path = await save_structure(output, document.source, hierarchy, repo)
            print_success(f"Structure saved to {path}")
            self.state["structure_path"] = str(path)

        if dry_run:
            self._print_tree(hierarchy)
            print_warning("Dry run: no repository or issues were touched.")
            self.state["success"] = True
            self.state["total_duration"] = format_duration(time.monotonic() - started)
            return self.state

        await self._materialize(hierarchy, repo, description=document.description)
        self.state["success"] = True
        self.state["total_duration"] = format_duration(time.monotonic() - started)
        self._print_final_summary()
        return self.state

    async def run_apply(self, structure_path: str | Path, repo: Optional[str] = None) -> dict[str, Any]:
        """Materialize a saved structure or partial-success snapshot.

        Raises:
            PipelineError: On any fatal failure.
        """
        started = time.monotonic()
        try:
            hierarchy, envelope = load_structure(structure_path)
        except SnapshotError as exc:
            raise PipelineError(1, str(exc)) from exc

        target = repo or envelope.get("targetRepo") or ""
        if not target:
            raise PipelineError(3, "No target repository: pass --repo")

        console.print(
            Panel(
                f"[bold bright_cyan]prd2issues[/bold bright_cyan]\n"
                f"Structure  : {structure_path}\n"
                f"Repository : {self.config.github.owner or '?'}/{target}",
                title="[bold]Apply[/bold]",
                border_style="bright_cyan",
            )
        )
        if envelope.get("failedInitiatives"):
            print_warning(
                f"This snapshot lists {len(envelope['failedInitiatives'])} failed initiatives; "
                "only the generated ones will be created."
            )

        if self.config.output.dry_run:
            self._print_tree(hierarchy)
            self.state["success"] = True
            return self.state

        await self._materialize(hierarchy, target, description=hierarchy.description)
        self.state["success"] = True
        self.state["total_duration"] = format_duration(time.monotonic() - started)
        self._print_final_summary()
        return self.state

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _parse(self, prd_path: str | Path) -> DocumentMetadata:
        try:
            document = await load_document(prd_path)
        except DocumentError as exc:
            raise PipelineError(1, str(exc)) from exc
        self.reporter.log(EventLevel.SUCCESS, f"Parsed '{document.title}' ({len(document.raw_text):,} characters)")
        if document.tech_stack is not None:
            self.reporter.log(EventLevel.DEBUG, f"Tech stack: {document.tech_stack.to_wire()}")
        return document

    async def _decompose(self, document: DocumentMetadata, staged: bool) -> DecompositionResult:
        decomposer = Decomposer(
            self.backend,
            observer=self.reporter,
            failure_snapshot_path=self.config.failure_snapshot_path,
            partial_snapshot_path=self.config.partial_snapshot_path,
        )
        try:
            with create_progress() as progress:
                progress.add_task("Generating hierarchy...", total=None)
                if staged:
                    result = await decomposer.decompose_staged(document)
                else:
                    result = await decomposer.decompose_single_pass(document)
        except AllInitiativesFailed as exc:
            for failure in exc.failures:
                print_error(f"  {failure.initiative_id} ({failure.initiative_title}): {failure.error}")
            raise PipelineError(2, str(exc)) from exc
        except DecompositionError as exc:
            raise PipelineError(2, str(exc)) from exc

        counts = result.hierarchy.counts()
        self.state["decomposition"] = {
            **counts.model_dump(),
            "attempted_initiatives": result.attempted,
            "failed_initiatives": [f.to_wire() for f in result.failures],
        }
        if result.partial:
            print_warning(
                f"Partial success: {len(result.hierarchy.initiatives)} of {result.attempted} "
                f"initiatives generated, {len(result.failures)} failed. "
                f"Snapshot: {result.snapshot_path}"
            )
        print_summary_table(
            {
                "Initiatives (L1)": str(counts.initiatives),
                "Capabilities (L2)": str(counts.capabilities),
                "Deliverables (L3)": str(counts.deliverables),
                "Checklist items": str(counts.checklist_items),
            },
            title="Hierarchy",
        )
        return result

    async def _prepare_repository(self, hierarchy: Hierarchy, repo: str, description: str) -> RepositoryInfo:
        paced = PacedTracker(self.github, delay=self.config.github.request_delay)
        manager = RepoManager(paced, observer=self.reporter)
        try:
            info = await manager.get_or_create(repo, description)
        except RepositoryError as exc:
            raise PipelineError(3, str(exc)) from exc
        self.github.repo = info.name

        custom = [initiative.id for initiative in hierarchy.initiatives]
        for _, capability in hierarchy.iter_capabilities():
            custom.extend(capability.labels)
        labels = LabelManager(paced, default_labels=self.config.github.default_labels, observer=self.reporter)
        try:
            await labels.ensure_labels(custom)
        except TrackerError as exc:
            raise PipelineError(3, f"Failed to configure labels: {exc}") from exc
        return info

    async def _materialize(self, hierarchy: Hierarchy, repo: str, description: str) -> None:
        print_step_header(3, STEP_NAMES[3])
        info = await self._prepare_repository(hierarchy, repo, description)
        self.state["repository"] = info.model_dump()

        print_step_header(4, STEP_NAMES[4])
        resolver = SymbolicReferenceResolver()
        materializer = StagedMaterializer(self.tracker, observer=self.reporter)
        try:
            created = await materializer.materialize(hierarchy, resolver)
        except MaterializationError as exc:
            await self._write_issue_map(info, resolver)
            raise PipelineError(4, str(exc)) from exc
        self.state["created"] = self._count_created(created)
        self.state["failed_items"] = [item.symbolic_id for item in materializer.failed]
        self.state["skipped_items"] = list(materializer.skipped)

        print_step_header(5, STEP_NAMES[5])
        linker = DependencyLinker(self.tracker, observer=self.reporter)
        report = await linker.link_dependencies(hierarchy, resolver)
        self.state["links"] = self._link_summary(report)

        if self.config.github.projects:
            print_step_header(6, STEP_NAMES[6])
            await self._add_to_project(hierarchy, created)

        await self._write_issue_map(info, resolver)

    async def _add_to_project(self, hierarchy: Hierarchy, created: list[CreatedItem]) -> None:
        """Put the created issues on a project board. Never fails the run."""
        manager = ProjectManager(
            PacedTracker(self.github, delay=self.config.github.request_delay), observer=self.reporter
        )
        try:
            project, added = await manager.manage_project(
                hierarchy.title,
                [item.handle for item in created],
                project_number=self.config.github.project_number,
            )
        except ProjectError as exc:
            print_warning(f"Skipping GitHub Project: {exc}")
            self.state["project"] = {"error": str(exc)}
            return
        self.state["project"] = {**project.model_dump(), "items": added}
        self.reporter.log(EventLevel.SUCCESS, f"Project ready: {project.url} ({added} issues)")

    async def _write_issue_map(self, info: RepositoryInfo, resolver: SymbolicReferenceResolver) -> None:
        path = await save_json(
            {
                "timestamp": utc_timestamp(),
                "repository": info.full_name,
                "url": info.url,
                "items": resolver.to_dict(),
            },
            self.config.issue_map_path,
        )
        self.state["issue_map_path"] = str(path)
        self.reporter.log(EventLevel.INFO, f"Issue map written to {path}")

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    @staticmethod
    def _count_created(created: list[CreatedItem]) -> dict[str, int]:
        counts = {kind.value: 0 for kind in EntityKind}
        fallbacks = 0
        for item in created:
            counts[item.kind.value] += 1
            if item.parent_linked is False:
                fallbacks += 1
        counts["parent_fallbacks"] = fallbacks
        return counts

    @staticmethod
    def _link_summary(report: LinkReport) -> dict[str, int]:
        return {
            "linked": report.linked,
            "unlinked": report.unlinked,
            "dropped": report.dropped,
            "comments": report.comments,
        }

    def _print_tree(self, hierarchy: Hierarchy) -> None:
        """Preview the issues a run would create."""
        tree = Tree(f"[bold]{hierarchy.title}[/bold]")
        for initiative in hierarchy.initiatives:
            node = tree.add(
                f"[magenta][INITIATIVE][/magenta] {initiative.title} "
                f"[dim]({initiative.id}, P{initiative.priority})[/dim]"
            )
            for capability in initiative.capabilities:
                deps = f" [dim]depends on {', '.join(capability.dependencies)}[/dim]" if capability.dependencies else ""
                cap_node = node.add(
                    f"[green][CAPABILITY][/green] {capability.title} "
                    f"[dim]({capability.id}, {capability.complexity.value}, "
                    f"{capability.estimated_hours:g}h)[/dim]{deps}"
                )
                for deliverable in capability.deliverables:
                    gate = " [yellow]review gate[/yellow]" if deliverable.requires_review_gate else ""
                    cap_node.add(f"[blue][DELIVERABLE][/blue] {deliverable.title} [dim]({deliverable.id})[/dim]{gate}")
                if capability.checklist:
                    cap_node.add(f"[dim]{len(capability.checklist)} checklist items[/dim]")
        console.print(tree)
        console.print()

    def _print_final_summary(self) -> None:
        created = self.state.get("created", {})
        links = self.state.get("links", {})
        failed = self.state.get("failed_items", [])
        print_summary_table(
            {
                "Repository": self.state.get("repository", {}).get("url", ""),
                "Initiatives": str(created.get("initiative", 0)),
                "Capabilities": str(created.get("capability", 0)),
                "Deliverables": str(created.get("deliverable", 0)),
                "Parent fallbacks": str(created.get("parent_fallbacks", 0)),
                "Failed items": str(len(failed)),
                "Blocking links": str(links.get("linked", 0)),
                "Dependency comments": str(links.get("comments", 0)),
                "Project": self.state.get("project", {}).get("url", ""),
                "Issue map": self.state.get("issue_map_path", ""),
                "Duration": self.state.get("total_duration", ""),
            },
            title="Issues Created",
        )
        if failed:
            print_warning(f"{len(failed)} items could not be created: {', '.join(failed)}")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="prd2issues",
        description="Decompose a PRD into GitHub issues (initiatives, capabilities, deliverables)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  prd2issues create requirements.md --repo my-project\n"
            "  prd2issues create requirements.md --repo my-project --staged --output plan.json\n"
            "  prd2issues create requirements.md --repo my-project --dry-run\n"
            "  prd2issues apply plan.json --repo my-project\n"
            "  prd2issues apply plan.json --repo my-project --project 4\n"
        ),
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Generate the hierarchy from a PRD and create issues")
    create.add_argument("prd", help="Path to the PRD markdown file")
    create.add_argument("--repo", "-r", required=True, help="Target repository name")
    create.add_argument("--owner", "-o", default=None, help="Repository owner (overrides GITHUB_OWNER)")
    create.add_argument(
        "--staged",
        action="store_true",
        help="Generate initiatives first, then each initiative's capabilities separately",
    )
    create.add_argument("--dry-run", action="store_true", help="Preview without touching GitHub")
    create.add_argument("--output", default=None, help="Save the generated structure to this JSON file")
    create.add_argument("--project", type=int, default=None, help="Add issues to this existing project number")
    create.add_argument("--skip-project", action="store_true", help="Do not create or fill a GitHub Project")
    create.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    apply = sub.add_parser("apply", help="Create issues from a saved structure or partial snapshot")
    apply.add_argument("structure", help="Path to the saved structure JSON")
    apply.add_argument("--repo", "-r", default=None, help="Target repository (defaults to the saved one)")
    apply.add_argument("--owner", "-o", default=None, help="Repository owner (overrides GITHUB_OWNER)")
    apply.add_argument("--dry-run", action="store_true", help="Preview without touching GitHub")
    apply.add_argument("--project", type=int, default=None, help="Add issues to this existing project number")
    apply.add_argument("--skip-project", action="store_true", help="Do not create or fill a GitHub Project")
    apply.add_argument("--verbose", "-v", action="store_true", help="Show debug output")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for ``prd2issues`` and ``python -m prd2issues.pipeline``."""
    args = _build_parser().parse_args(argv)

    config = Config.from_env()
    if args.owner:
        config.github.owner = args.owner
    if args.verbose:
        config.output.verbose = True
    if args.dry_run:
        config.output.dry_run = True
    if args.project:
        config.github.project_number = args.project
    if args.skip_project:
        config.github.projects = False

    try:
        config.require(
            github=not config.output.dry_run,
            anthropic=args.command == "create",
        )
    except ConfigError as exc:
        print_error(str(exc))
        sys.exit(1)
    config.ensure_directories()

    pipeline = Pipeline(config)
    try:
        if args.command == "create":
            asyncio.run(pipeline.run_create(args.prd, args.repo, staged=args.staged, output=args.output))
        else:
            asyncio.run(pipeline.run_apply(args.structure, args.repo))
    except PipelineError as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)

    print_success("Done!")


if __name__ == "__main__":
    main()
