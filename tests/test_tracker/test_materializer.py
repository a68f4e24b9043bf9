"""Tests for StagedMaterializer and the parent-link fallback.

All tests run against ``FakeTracker`` from conftest, which numbers issues
from 1 in creation order.
"""

from __future__ import annotations

import pytest

from prd2issues.events import EventKind, PipelineEvent
from prd2issues.tracker.materializer import MaterializationFatal, StagedMaterializer, link_to_parent
from prd2issues.tracker.resolver import EntityKind, SymbolicReferenceResolver


async def _materialize(tracker, hierarchy, events: list[PipelineEvent] | None = None):
    resolver = SymbolicReferenceResolver()
    materializer = StagedMaterializer(tracker, observer=events.append if events is not None else (lambda e: None))
    created = await materializer.materialize(hierarchy, resolver)
    return materializer, resolver, created


class TestMaterialize:
    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("shape", [(1, 1, 0), (2, 3, 0), (2, 2, 2), (3, 1, 4)])
    async def test_creates_one_item_per_entity(self, tracker, make_hierarchy, shape):
        n, c, d = shape
        hierarchy = make_hierarchy(n, c, d)

        materializer, resolver, created = await _materialize(tracker, hierarchy)

        expected = n + n * c + n * c * d
        assert len(created) == expected
        assert len(tracker.issues) == expected
        assert resolver.count() == expected
        assert resolver.count(EntityKind.INITIATIVE) == n
        assert resolver.count(EntityKind.DELIVERABLE) == n * c * d
        assert materializer.failed == []
        assert materializer.skipped == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_parents_created_before_children(self, tracker, make_hierarchy):
        _, resolver, created = await _materialize(tracker, make_hierarchy(2, 2, 1))

        kinds = [item.kind for item in created]
        assert kinds == [EntityKind.INITIATIVE] * 2 + [EntityKind.CAPABILITY] * 4 + [EntityKind.DELIVERABLE] * 4
        assert tracker.sub_issues == [(1, 3), (1, 4), (2, 5), (2, 6), (3, 7), (4, 8), (5, 9), (6, 10)]
        assert all(parent < child for parent, child in tracker.sub_issues)
        assert all(item.parent_linked for item in created if item.kind is not EntityKind.INITIATIVE)
        assert resolver.lookup(EntityKind.CAPABILITY, "capability-2-1").number == 5

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_item_content(self, tracker, make_hierarchy):
        await _materialize(tracker, make_hierarchy(1, 1, 1))

        initiative, capability, deliverable = tracker.issues[1], tracker.issues[2], tracker.issues[3]
        assert initiative["title"] == "[INITIATIVE] Initiative 1"
        assert initiative["labels"] == ["type:initiative", "initiative-1"]
        assert capability["body"].startswith("## Initiative\n#1 Initiative 1")
        assert "type:capability" in capability["labels"]
        assert deliverable["body"].startswith("## Capability\n#2 Capability 1.1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_events(self, tracker, make_hierarchy):
        events: list[PipelineEvent] = []
        await _materialize(tracker, make_hierarchy(1, 2), events)
        kinds = [e.kind for e in events]
        assert kinds.count(EventKind.ITEM_CREATED) == 3
        assert kinds.count(EventKind.PARENT_LINKED) == 2
        assert events[0].kind is EventKind.ITEM_CREATED
        assert events[0].data == {"entity_kind": "initiative", "id": "initiative-1", "number": 1}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_events_carry_entity_kind(self, tracker, make_hierarchy):
        tracker.fail_titles = {"[CAPABILITY] Capability 1.1"}
        events: list[PipelineEvent] = []

        await _materialize(tracker, make_hierarchy(1, 1, 1), events)

        failed = [e for e in events if e.kind is EventKind.ITEM_FAILED]
        skipped = [e for e in events if e.kind is EventKind.ITEM_SKIPPED]
        assert failed[0].data == {"entity_kind": "capability", "id": "capability-1-1"}
        assert skipped[0].data == {"entity_kind": "deliverable", "id": "deliverable-1-1-1"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fresh_resolvers_create_twice(self, tracker, make_hierarchy):
        hierarchy = make_hierarchy(1, 2, 1)
        _, first, _ = await _materialize(tracker, hierarchy)
        _, second, _ = await _materialize(tracker, hierarchy)

        assert len(tracker.issues) == 2 * 5
        assert first.lookup(EntityKind.INITIATIVE, "initiative-1").number == 1
        assert second.lookup(EntityKind.INITIATIVE, "initiative-1").number == 6


class TestMaterializeFailures:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_initiative_failure_is_fatal(self, tracker, make_hierarchy):
        tracker.fail_titles = {"[INITIATIVE] Initiative 2"}

        with pytest.raises(MaterializationFatal, match='"Initiative 2"') as exc_info:
            await _materialize(tracker, make_hierarchy(3, 2))

        assert [item.symbolic_id for item in exc_info.value.created] == ["initiative-1"]
        assert tracker.call_names() == ["create_item", "create_item"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_capability_failure_skips_deliverables(self, tracker, make_hierarchy):
        tracker.fail_titles = {"[CAPABILITY] Capability 1.1"}
        events: list[PipelineEvent] = []

        materializer, resolver, created = await _materialize(tracker, make_hierarchy(2, 2, 2), events)

        assert len(created) == 2 + 3 + 6
        assert [f.symbolic_id for f in materializer.failed] == ["capability-1-1"]
        assert materializer.skipped == ["deliverable-1-1-1", "deliverable-1-1-2"]
        assert resolver.lookup(EntityKind.CAPABILITY, "capability-1-1") is None
        assert not any(issue["title"].startswith("[DELIVERABLE] Deliverable 1.1.") for issue in tracker.issues.values())
        kinds = [e.kind for e in events]
        assert kinds.count(EventKind.ITEM_FAILED) == 1
        assert kinds.count(EventKind.ITEM_SKIPPED) == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_deliverable_failure_recorded(self, tracker, make_hierarchy):
        tracker.fail_titles = {"[DELIVERABLE] Deliverable 1.1.1"}

        materializer, _, created = await _materialize(tracker, make_hierarchy(1, 1, 2))

        assert len(created) == 3
        assert [f.kind for f in materializer.failed] == [EntityKind.DELIVERABLE]
        assert materializer.skipped == []


class TestParentFallback:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_label_and_body_fallback(self, tracker, make_hierarchy):
        tracker.fail_parent_links = True
        events: list[PipelineEvent] = []

        _, resolver, created = await _materialize(tracker, make_hierarchy(1, 2), events)

        assert len(created) == 3
        assert all(item.parent_linked is False for item in created[1:])
        for number in (2, 3):
            assert "parent:#1" in tracker.issues[number]["labels"]
            assert tracker.issues[number]["body"].startswith("**Parent Issue**: #1 Initiative 1\n\n---\n\n")
        assert tracker.labels == {"parent:#1"}
        assert resolver.lookup(EntityKind.CAPABILITY, "capability-1-1").body.startswith("**Parent Issue**")

        kinds = [e.kind for e in events]
        assert kinds.count(EventKind.PARENT_FALLBACK) == 2
        assert EventKind.BEST_EFFORT_DEGRADED not in kinds

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_permission_hint(self, tracker):
        tracker.fail_parent_links = True
        tracker.parent_status = 403
        parent = await tracker.create_item("P", "", [])
        child = await tracker.create_item("C", "body", [])
        events: list[PipelineEvent] = []

        _, linked = await link_to_parent(tracker, parent, "P", child, events.append)

        assert linked is False
        assert "'repo' scope" in events[0].message

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fallback_steps_are_independent(self, tracker):
        tracker.fail_parent_links = True
        tracker.fail_add_label = True
        parent = await tracker.create_item("P", "", [])
        child = await tracker.create_item("C", "body", [])
        events: list[PipelineEvent] = []

        handle, linked = await link_to_parent(tracker, parent, "P", child, events.append)

        assert linked is False
        assert handle.body.startswith("**Parent Issue**: #1 P")
        degraded = [e for e in events if e.kind is EventKind.BEST_EFFORT_DEGRADED]
        assert len(degraded) == 1
        assert "add parent label" in degraded[0].message

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_every_fallback_step_failing_still_returns(self, tracker):
        tracker.fail_parent_links = True
        tracker.fail_add_label = True
        tracker.fail_updates = True
        parent = await tracker.create_item("P", "", [])
        child = await tracker.create_item("C", "body", [])
        events: list[PipelineEvent] = []

        handle, linked = await link_to_parent(tracker, parent, "P", child, events.append)

        assert linked is False
        assert handle.body == "body"
        assert [e.kind for e in events].count(EventKind.BEST_EFFORT_DEGRADED) == 2
