"""Tests for PacedTracker."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from prd2issues.tracker.base import IssueHandle, TrackerError
from prd2issues.tracker.pacing import PacedTracker


class _SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestPacedTracker:
    @pytest.mark.unit
    def test_negative_delay_rejected(self, tracker):
        with pytest.raises(ValueError):
            PacedTracker(tracker, delay=-1)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sleeps_after_every_call(self, tracker):
        sleep = _SleepRecorder()
        paced = PacedTracker(tracker, delay=0.5, sleep=sleep)

        handle = await paced.create_item("A", "body", ["x"])
        await paced.add_label(handle, "y")
        await paced.ensure_label_exists("y", "FFFFFF")
        await paced.add_comment(handle, "hi")
        other = await paced.create_item("B", "body", [])
        await paced.create_parent_child_link(handle, other)
        await paced.create_blocking_link(handle, other)
        await paced.update_item_body(other, "new")

        assert paced.calls == 8
        assert sleep.delays == [0.5] * 8
        assert tracker.call_names() == [
            "create_item",
            "add_label",
            "ensure_label_exists",
            "add_comment",
            "create_item",
            "create_parent_child_link",
            "create_blocking_link",
            "update_item_body",
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sleeps_after_failures_too(self, tracker):
        sleep = _SleepRecorder()
        tracker.fail_titles = {"broken"}
        paced = PacedTracker(tracker, delay=1.0, sleep=sleep)

        with pytest.raises(TrackerError):
            await paced.create_item("broken", "", [])

        assert paced.calls == 1
        assert sleep.delays == [1.0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_zero_delay_never_sleeps(self, tracker):
        sleep = _SleepRecorder()
        paced = PacedTracker(tracker, delay=0, sleep=sleep)
        handle = await paced.create_item("A", "", [])
        assert isinstance(handle, IssueHandle)
        assert paced.calls == 1
        assert sleep.delays == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_github_calls_forwarded_and_paced(self):
        github = MagicMock()
        github.owner = "acme"
        github.request = AsyncMock(return_value={"login": "acme"})
        github.list_labels = AsyncMock(return_value=["bug"])
        sleep = _SleepRecorder()
        paced = PacedTracker(github, delay=0.5, sleep=sleep)

        assert paced.owner == "acme"
        assert await paced.request("GET", "/orgs/acme") == {"login": "acme"}
        assert await paced.list_labels() == ["bug"]

        github.request.assert_awaited_once_with("GET", "/orgs/acme", json=None, params=None)
        assert sleep.delays == [0.5, 0.5]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_graphql_forwarded_and_paced(self):
        github = MagicMock()
        github.graphql = AsyncMock(return_value={"viewer": {"login": "acme"}})
        sleep = _SleepRecorder()
        paced = PacedTracker(github, delay=0.5, sleep=sleep)

        assert await paced.graphql("query { viewer { login } }") == {"viewer": {"login": "acme"}}

        github.graphql.assert_awaited_once_with("query { viewer { login } }", None)
        assert sleep.delays == [0.5]
