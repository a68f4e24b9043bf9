"""Request pacing for tracker calls.

GitHub applies secondary rate limits to bursts of content-creating
requests. ``PacedTracker`` wraps any ``TrackerClient`` and sleeps for a
fixed delay after every call, successful or not, so consecutive calls of a
run are always at least ``delay`` seconds apart.

When the wrapped client is a ``GitHubClient``, ``request``,
``list_labels`` and ``graphql`` are paced too, so repository, label and
project setup can share the same wrapper.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .base import IssueHandle, TrackerClient

T = TypeVar("T")


class PacedTracker:
    """``TrackerClient`` decorator enforcing a minimum gap between calls."""

    def __init__(
        self,
        client: TrackerClient,
        delay: float = 1.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.client = client
        self.delay = delay
        self._sleep = sleep or asyncio.sleep
        self.calls = 0

    async def _paced(self, call: Awaitable[T]) -> T:
        try:
            return await call
        finally:
            self.calls += 1
            if self.delay:
                await self._sleep(self.delay)

    @property
    def owner(self) -> str:
        return self.client.owner

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        return await self._paced(
            self.client.request(method, path, json=json, params=params)
        )

    async def list_labels(self) -> list[str]:
        return await self._paced(self.client.list_labels())

    async def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self._paced(self.client.graphql(query, variables))

    async def create_item(self, title: str, body: str, labels: list[str]) -> IssueHandle:
        return await self._paced(self.client.create_item(title, body, labels))

    async def update_item_body(self, handle: IssueHandle, body: str) -> IssueHandle:
        return await self._paced(self.client.update_item_body(handle, body))

    async def add_label(self, handle: IssueHandle, name: str) -> None:
        await self._paced(self.client.add_label(handle, name))

    async def ensure_label_exists(self, name: str, color: str, description: str = "") -> None:
        await self._paced(self.client.ensure_label_exists(name, color, description))

    async def create_parent_child_link(self, parent: IssueHandle, child: IssueHandle) -> None:
        await self._paced(self.client.create_parent_child_link(parent, child))

    async def create_blocking_link(self, blocker: IssueHandle, blocked: IssueHandle) -> None:
        await self._paced(self.client.create_blocking_link(blocker, blocked))

    async def add_comment(self, handle: IssueHandle, text: str) -> None:
        await self._paced(self.client.add_comment(handle, text))
