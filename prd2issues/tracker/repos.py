"""Target repository lookup and creation."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from prd2issues.events import EventKind, EventLevel, Observer, PipelineEvent, null_observer

from .base import TrackerError
from .github_client import GitHubClient
from .pacing import PacedTracker


class RepositoryError(Exception):
    """Raised when the target repository cannot be found or created."""


class RepositoryInfo(BaseModel):
    name: str
    full_name: str
    url: str
    owner: str
    created: bool = Field(default=False, description="Whether this run created it")


class RepoManager:
    """Get-or-create for the repository issues are written to.

    New repositories are created in the organization when ``owner`` is one,
    otherwise in the authenticated user's account.
    """

    def __init__(self, client: GitHubClient | PacedTracker, observer: Observer = null_observer) -> None:
        self.client = client
        self.observer = observer
        self._is_organization: Optional[bool] = None

    def _say(self, message: str, level: EventLevel = EventLevel.INFO) -> None:
        self.observer(PipelineEvent(kind=EventKind.MESSAGE, message=message, level=level))

    def _info(self, data: dict, created: bool = False) -> RepositoryInfo:
        return RepositoryInfo(
            name=data["name"],
            full_name=data["full_name"],
            url=data["html_url"],
            owner=self.client.owner,
            created=created,
        )

    async def is_organization(self) -> bool:
        if self._is_organization is not None:
            return self._is_organization
        try:
            await self.client.request("GET", f"/orgs/{self.client.owner}")
            self._is_organization = True
        except TrackerError as exc:
            if exc.status != 404:
                self._say(
                    f"Could not determine whether '{self.client.owner}' is an organization: "
                    f"{exc}. Assuming a user account.",
                    EventLevel.WARNING,
                )
            self._is_organization = False
        return self._is_organization

    async def repository_exists(self, name: str) -> bool:
        try:
            await self.client.request("GET", f"/repos/{self.client.owner}/{name}")
        except TrackerError as exc:
            if exc.status == 404:
                return False
            raise RepositoryError(f"Failed to check repository: {exc}") from exc
        return True

    async def get_or_create(self, name: str, description: str = "") -> RepositoryInfo:
        """Return the repository, creating it when it does not exist.

        Raises:
            RepositoryError: On lookup or creation failure.
        """
        try:
            data = await self.client.request("GET", f"/repos/{self.client.owner}/{name}")
        except TrackerError as exc:
            if exc.status != 404:
                raise RepositoryError(f"Failed to check repository: {exc}") from exc
            return await self._create(name, description)

        self._say(f"Using existing repository: {data['html_url']}")
        return self._info(data)

    async def _create(self, name: str, description: str) -> RepositoryInfo:
        is_org = await self.is_organization()
        payload = {"name": name, "description": description[:350], "private": False, "auto_init": True}
        path = f"/orgs/{self.client.owner}/repos" if is_org else "/user/repos"
        try:
            data = await self.client.request("POST", path, json=payload)
        except TrackerError as exc:
            if exc.status == 422:
                raise RepositoryError(f'Repository name "{name}" is already taken or invalid') from exc
            if exc.status == 403 and is_org:
                raise RepositoryError(
                    f"Permission denied to create repository in organization '{self.client.owner}'. "
                    "Ensure your GitHub token has 'repo' and 'read:org' scopes."
                ) from exc
            raise RepositoryError(f"Failed to create repository: {exc}") from exc

        self._say(f"Created repository: {data['html_url']}", EventLevel.SUCCESS)
        if is_org:
            self._say("Remember to enable sub-issues: Settings -> Features -> Sub-issues")
        else:
            self._say(
                "Sub-issues may be unavailable for personal repositories; "
                "parent links will fall back to labels.",
                EventLevel.WARNING,
            )
        return self._info(data, created=True)
