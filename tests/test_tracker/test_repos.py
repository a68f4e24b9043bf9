"""Tests for RepoManager."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from prd2issues.events import EventLevel, PipelineEvent
from prd2issues.tracker.base import TrackerError
from prd2issues.tracker.repos import RepoManager, RepositoryError

_REPO = {"name": "shop", "full_name": "acme/shop", "html_url": "https://github.com/acme/shop"}


def _github(*responses) -> MagicMock:
    client = MagicMock()
    client.owner = "acme"
    client.request = AsyncMock(side_effect=list(responses))
    return client


def _not_found() -> TrackerError:
    return TrackerError("Not Found", status=404)


class TestGetOrCreate:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_existing(self):
        github = _github(_REPO)

        info = await RepoManager(github).get_or_create("shop")

        assert info.full_name == "acme/shop"
        assert info.created is False
        github.request.assert_awaited_once_with("GET", "/repos/acme/shop")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_creates_in_organization(self):
        github = _github(_not_found(), {"login": "acme"}, _REPO)
        events: list[PipelineEvent] = []

        info = await RepoManager(github, events.append).get_or_create("shop", "A shop")

        assert info.created is True
        args, kwargs = github.request.call_args
        assert args == ("POST", "/orgs/acme/repos")
        assert kwargs["json"]["name"] == "shop"
        assert kwargs["json"]["auto_init"] is True
        assert any("Sub-issues" in e.message for e in events)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_creates_for_user(self):
        github = _github(_not_found(), _not_found(), _REPO)
        events: list[PipelineEvent] = []

        await RepoManager(github, events.append).get_or_create("shop")

        assert github.request.call_args[0] == ("POST", "/user/repos")
        assert events[-1].level is EventLevel.WARNING

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_description_truncated(self):
        github = _github(_not_found(), _not_found(), _REPO)

        await RepoManager(github).get_or_create("shop", "x" * 1000)

        assert len(github.request.call_args[1]["json"]["description"]) == 350

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lookup_failure(self):
        github = _github(TrackerError("Bad credentials", status=401))

        with pytest.raises(RepositoryError, match="Failed to check repository"):
            await RepoManager(github).get_or_create("shop")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_name_taken(self):
        github = _github(_not_found(), _not_found(), TrackerError("exists", status=422))

        with pytest.raises(RepositoryError, match="already taken"):
            await RepoManager(github).get_or_create("shop")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_org_permission_denied(self):
        github = _github(_not_found(), {"login": "acme"}, TrackerError("forbidden", status=403))

        with pytest.raises(RepositoryError, match="read:org"):
            await RepoManager(github).get_or_create("shop")


class TestOwnerKind:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_result_cached(self):
        github = _github({"login": "acme"})
        manager = RepoManager(github)
        assert await manager.is_organization() is True
        assert await manager.is_organization() is True
        assert github.request.await_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_error_assumes_user(self):
        github = _github(TrackerError("boom", status=500))
        events: list[PipelineEvent] = []

        assert await RepoManager(github, events.append).is_organization() is False
        assert events[0].level is EventLevel.WARNING

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repository_exists(self):
        github = _github(_REPO, _not_found())
        manager = RepoManager(github)
        assert await manager.repository_exists("shop") is True
        assert await manager.repository_exists("nope") is False
