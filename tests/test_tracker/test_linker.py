"""Tests for DependencyLinker."""

from __future__ import annotations

import pytest

from conftest import capability_payload, hierarchy_payload, summary_payload
from prd2issues.events import EventKind, PipelineEvent
from prd2issues.planner.models import Hierarchy
from prd2issues.tracker.linker import DependencyLinker
from prd2issues.tracker.materializer import StagedMaterializer
from prd2issues.tracker.resolver import SymbolicReferenceResolver


def _capability_graph() -> Hierarchy:
    """Two initiatives; issue numbers are 1-2 (initiatives) and 3-6 (capabilities)."""
    payload = hierarchy_payload(2, 2)
    payload["initiatives"][0]["capabilities"][1]["dependencies"] = ["capability-1-1"]
    payload["initiatives"][1]["capabilities"][0]["dependencies"] = [
        "capability-1-1",
        "capability-1-2",
        "capability-9-9",
    ]
    return Hierarchy.model_validate(payload)


def _deliverable_chain() -> Hierarchy:
    return Hierarchy.model_validate(
        {
            "title": "T",
            "description": "D",
            "initiatives": [
                {
                    **summary_payload(1),
                    "capabilities": [capability_payload(1, 1, deliverables=3, deliverable_dependencies=True)],
                }
            ],
        }
    )


async def _run(tracker, hierarchy: Hierarchy, events: list[PipelineEvent] | None = None):
    resolver = SymbolicReferenceResolver()
    await StagedMaterializer(tracker).materialize(hierarchy, resolver)
    observer = events.append if events is not None else (lambda e: None)
    return await DependencyLinker(tracker, observer).link_dependencies(hierarchy, resolver)


class TestCapabilityDependencies:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_links_and_comments(self, tracker):
        report = await _run(tracker, _capability_graph())

        assert tracker.blocking == [(3, 4), (3, 5), (4, 5)]
        assert report.linked == 3
        assert report.unlinked == 0
        assert report.dropped == 1
        assert report.dropped_edges == [("capability-2-1", "capability-9-9")]
        assert report.comments == 2
        assert tracker.comments[4] == ["**Dependencies** (also linked as 'blocks' relationships): #3"]
        assert tracker.comments[5] == ["**Dependencies** (also linked as 'blocks' relationships): #3, #4"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_one_comment_per_item(self, tracker):
        await _run(tracker, _capability_graph())
        assert tracker.call_names().count("add_comment") == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_blocking_unavailable_falls_back_to_comment(self, tracker):
        tracker.fail_blocking_links = True
        events: list[PipelineEvent] = []

        report = await _run(tracker, _capability_graph(), events)

        assert report.linked == 0
        assert report.unlinked == 3
        assert report.resolvable == 3
        assert tracker.comments[5] == ["**Dependencies**: This capability depends on #3, #4"]
        assert [e.kind for e in events].count(EventKind.BEST_EFFORT_DEGRADED) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_comment_failure_counted(self, tracker):
        tracker.fail_comments = True

        report = await _run(tracker, _capability_graph())

        assert report.comments == 0
        assert report.degraded == 2
        assert report.linked == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_blocker_dropped(self, tracker):
        tracker.fail_titles = {"[CAPABILITY] Capability 1.1"}

        report = await _run(tracker, _capability_graph())

        # capability-1-2 is #3 and capability-2-1 is #4 once capability-1-1 is missing.
        assert tracker.blocking == [(3, 4)]
        assert ("capability-1-2", "capability-1-1") in report.dropped_edges
        assert report.dropped == 3
        assert 3 not in tracker.comments

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_dependent_drops_all_edges(self, tracker):
        tracker.fail_titles = {"[CAPABILITY] Capability 2.1"}

        report = await _run(tracker, _capability_graph())

        assert tracker.blocking == [(3, 4)]
        assert report.dropped == 3
        assert report.comments == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repeated_dependency_linked_once(self, tracker):
        payload = hierarchy_payload(1, 2)
        payload["initiatives"][0]["capabilities"][1]["dependencies"] = ["capability-1-1", "capability-1-1"]

        report = await _run(tracker, Hierarchy.model_validate(payload))

        assert tracker.blocking == [(2, 3)]
        assert report.linked == 1
        assert tracker.comments[3] == ["**Dependencies** (also linked as 'blocks' relationships): #2"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_self_dependency_ignored(self, tracker):
        payload = hierarchy_payload(1, 2)
        payload["initiatives"][0]["capabilities"][1]["dependencies"] = ["capability-1-2"]
        events: list[PipelineEvent] = []

        report = await _run(tracker, Hierarchy.model_validate(payload), events)

        assert tracker.blocking == []
        assert report.linked == report.dropped == report.comments == 0
        assert "add_comment" not in tracker.call_names()
        assert any(e.kind is EventKind.DEPENDENCY_DROPPED for e in events)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_self_dependency_alongside_real_one(self, tracker):
        payload = hierarchy_payload(1, 2)
        payload["initiatives"][0]["capabilities"][1]["dependencies"] = ["capability-1-2", "capability-1-1"]

        await _run(tracker, Hierarchy.model_validate(payload))

        assert tracker.blocking == [(2, 3)]
        assert tracker.comments[3] == ["**Dependencies** (also linked as 'blocks' relationships): #2"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_dependencies_no_calls(self, tracker, make_hierarchy):
        report = await _run(tracker, make_hierarchy(2, 2, 1))
        assert report.linked == report.dropped == report.comments == 0
        assert "add_comment" not in tracker.call_names()


class TestDeliverableDependencies:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_chain(self, tracker):
        report = await _run(tracker, _deliverable_chain())

        # initiative #1, capability #2, deliverables #3-#5
        assert tracker.blocking == [(3, 4), (4, 5)]
        assert report.linked == 2
        assert tracker.comments[5] == ["**Dependencies** (also linked as 'blocks' relationships): #4"]
