"""Tracker interface shared by the materializer, the linker and the clients.

The core talks to the issue tracker only through ``TrackerClient``. Every
method may raise ``TrackerError``; callers decide whether that is fatal.
"""

from __future__ import annotations

from typing import Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field


class TrackerError(Exception):
    """A tracker call failed.

    Attributes:
        status: HTTP status code when the failure came from a response.
        already_exists: ``True`` when the tracker rejected a create because
            the object already exists (e.g. a duplicate label).
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        already_exists: bool = False,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.already_exists = already_exists


class IssueHandle(BaseModel):
    """Opaque reference to a created tracker item."""

    model_config = ConfigDict(frozen=True)

    number: int = Field(..., description="Repository-scoped issue number")
    id: int = Field(default=0, description="Global numeric id used by relationship endpoints")
    node_id: str = Field(default="")
    url: str = Field(default="")
    title: str = Field(default="")
    body: str = Field(default="", description="Body as last written by this process")

    @property
    def ref(self) -> str:
        return f"#{self.number}"


class TrackerClient(Protocol):
    async def create_item(self, title: str, body: str, labels: list[str]) -> IssueHandle: ...

    async def update_item_body(self, handle: IssueHandle, body: str) -> IssueHandle: ...

    async def add_label(self, handle: IssueHandle, name: str) -> None: ...

    async def ensure_label_exists(self, name: str, color: str, description: str = "") -> None: ...

    async def create_parent_child_link(self, parent: IssueHandle, child: IssueHandle) -> None: ...

    async def create_blocking_link(self, blocker: IssueHandle, blocked: IssueHandle) -> None: ...

    async def add_comment(self, handle: IssueHandle, text: str) -> None: ...
