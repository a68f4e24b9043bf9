"""GitHub Projects (v2) board for the created issues.

Runs after dependency linking. A new project gets a single-select
"Workflow Status" field whose options are the AI + human-in-the-loop
workflow columns; every created issue is added to the board and placed in
``Backlog``. An existing project (``--project N``) is used as-is and no
field is created on it.

Projects v2 is only reachable through the GraphQL API, so every call goes
through ``GitHubClient.graphql``.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from prd2issues.events import EventKind, EventLevel, Observer, PipelineEvent, null_observer

from .base import IssueHandle, TrackerError
from .github_client import GitHubClient
from .pacing import PacedTracker


class ProjectError(Exception):
    """Raised when the project itself cannot be found or created."""


class ProjectInfo(BaseModel):
    id: str
    number: int
    title: str
    url: str
    created: bool = Field(default=False, description="Whether this run created it")


class StatusField(BaseModel):
    id: str
    name: str
    options: dict[str, str] = Field(default_factory=dict, description="Option name -> option id")


class StatusOption(BaseModel):
    name: str
    color: str
    description: str = ""


STATUS_FIELD_NAME = "Workflow Status"
INITIAL_STATUS = "Backlog"

WORKFLOW_STATUSES: list[StatusOption] = [
    StatusOption(name="Backlog", color="GRAY", description="Issue is in the backlog and not yet ready to be worked on"),
    StatusOption(name="Ready for AI", color="GREEN", description="Issue is ready for AI implementation"),
    StatusOption(name="AI: Planning & Scaffold", color="YELLOW", description="AI is planning and creating initial scaffolding"),
    StatusOption(name="AI: Implementation", color="ORANGE", description="AI is actively implementing the feature"),
    StatusOption(name="Awaiting Review (HITL)", color="RED", description="Implementation complete, awaiting human review"),
    StatusOption(name="Changes Requested", color="PURPLE", description="Human reviewer has requested changes"),
    StatusOption(name="Ready to Merge", color="PINK", description="Changes approved and ready to be merged"),
    StatusOption(name="Merged / Verification", color="BLUE", description="Code merged, undergoing verification testing"),
    StatusOption(name="Done", color="GREEN", description="Issue is complete and verified"),
]

# ----------------------------------------------------------------------
# GraphQL documents
# ----------------------------------------------------------------------

OWNER_QUERY = """
query($login: String!) {
  repositoryOwner(login: $login) { id }
}
"""

PROJECT_QUERY = """
query($login: String!, $number: Int!) {
  repositoryOwner(login: $login) {
    ... on ProjectV2Owner {
      projectV2(number: $number) { id number title url }
    }
  }
}
"""

CREATE_PROJECT_MUTATION = """
mutation($ownerId: ID!, $title: String!) {
  createProjectV2(input: {ownerId: $ownerId, title: $title}) {
    projectV2 { id number title url }
  }
}
"""

CREATE_FIELD_MUTATION = """
mutation($projectId: ID!, $name: String!, $options: [ProjectV2SingleSelectFieldOptionInput!]!) {
  createProjectV2Field(input: {
    projectId: $projectId
    name: $name
    dataType: SINGLE_SELECT
    singleSelectOptions: $options
  }) {
    projectV2Field {
      ... on ProjectV2SingleSelectField { id name options { id name } }
    }
  }
}
"""

ADD_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}
"""

SET_STATUS_MUTATION = """
mutation($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(input: {
    projectId: $projectId
    itemId: $itemId
    fieldId: $fieldId
    value: {singleSelectOptionId: $optionId}
  }) {
    projectV2Item { id }
  }
}
"""


class ProjectManager:
    """Get-or-create a Projects v2 board and fill it with created issues."""

    def __init__(self, client: GitHubClient | PacedTracker, observer: Observer = null_observer) -> None:
        self.client = client
        self.observer = observer

    def _emit(self, kind: EventKind, message: str, level: EventLevel = EventLevel.INFO, **data: Any) -> None:
        self.observer(PipelineEvent(kind=kind, message=message, level=level, data=data))

    @staticmethod
    def _project(data: dict[str, Any], created: bool = False) -> ProjectInfo:
        return ProjectInfo(
            id=data["id"], number=data["number"], title=data["title"], url=data.get("url", ""), created=created
        )

    async def owner_id(self) -> str:
        try:
            data = await self.client.graphql(OWNER_QUERY, {"login": self.client.owner})
        except TrackerError as exc:
            raise ProjectError(f'Failed to get owner ID for "{self.client.owner}": {exc}') from exc
        owner = data.get("repositoryOwner")
        if not owner:
            raise ProjectError(f'Owner "{self.client.owner}" not found as user or organization')
        return owner["id"]

    async def get_project(self, number: int) -> Optional[ProjectInfo]:
        """Look up project ``number`` of the owner; ``None`` when it does not exist."""
        try:
            data = await self.client.graphql(PROJECT_QUERY, {"login": self.client.owner, "number": number})
        except TrackerError as exc:
            if exc.status == 404:
                return None
            raise ProjectError(f"Failed to get project #{number}: {exc}") from exc
        project = (data.get("repositoryOwner") or {}).get("projectV2")
        return self._project(project) if project else None

    async def create_project(self, title: str) -> ProjectInfo:
        owner_id = await self.owner_id()
        try:
            data = await self.client.graphql(CREATE_PROJECT_MUTATION, {"ownerId": owner_id, "title": title})
        except TrackerError as exc:
            raise ProjectError(f'Failed to create project "{title}": {exc}') from exc
        project = (data.get("createProjectV2") or {}).get("projectV2")
        if not project:
            raise ProjectError(f'Failed to create project "{title}": no project returned')
        return self._project(project, created=True)

    async def create_status_field(self, project_id: str) -> StatusField:
        options = [option.model_dump() for option in WORKFLOW_STATUSES]
        try:
            data = await self.client.graphql(
                CREATE_FIELD_MUTATION,
                {"projectId": project_id, "name": STATUS_FIELD_NAME, "options": options},
            )
        except TrackerError as exc:
            raise ProjectError(f"Failed to create {STATUS_FIELD_NAME} field: {exc}") from exc
        field = (data.get("createProjectV2Field") or {}).get("projectV2Field")
        if not field:
            raise ProjectError(f"Failed to create {STATUS_FIELD_NAME} field: no field returned")
        return StatusField(
            id=field["id"],
            name=field.get("name", STATUS_FIELD_NAME),
            options={option["name"]: option["id"] for option in field.get("options", [])},
        )

    async def add_issues(
        self,
        project: ProjectInfo,
        handles: list[IssueHandle],
        status_field: Optional[StatusField] = None,
    ) -> int:
        """Add every issue to the board; returns how many were added.

        Failures are per item: a failed add or status update is reported and
        the remaining issues are still processed.
        """
        initial = status_field.options.get(INITIAL_STATUS) if status_field else None
        added = 0
        for handle in handles:
            if not handle.node_id:
                self._emit(
                    EventKind.BEST_EFFORT_DEGRADED,
                    f"Could not add {handle.ref} to project: no node id",
                    EventLevel.WARNING,
                    issue=handle.number,
                )
                continue
            try:
                data = await self.client.graphql(
                    ADD_ITEM_MUTATION, {"projectId": project.id, "contentId": handle.node_id}
                )
            except TrackerError as exc:
                self._emit(
                    EventKind.BEST_EFFORT_DEGRADED,
                    f"Failed to add {handle.ref} to project: {exc}",
                    EventLevel.WARNING,
                    issue=handle.number,
                )
                continue
            added += 1
            self._emit(
                EventKind.PROJECT_ITEM_ADDED,
                f"Added {handle.ref} to project #{project.number}",
                EventLevel.DEBUG,
                issue=handle.number,
            )

            item_id = ((data.get("addProjectV2ItemById") or {}).get("item") or {}).get("id")
            if not (status_field and initial and item_id):
                continue
            try:
                await self.client.graphql(
                    SET_STATUS_MUTATION,
                    {"projectId": project.id, "itemId": item_id, "fieldId": status_field.id, "optionId": initial},
                )
            except TrackerError as exc:
                self._emit(
                    EventKind.BEST_EFFORT_DEGRADED,
                    f'Could not set {handle.ref} to "{INITIAL_STATUS}": {exc}',
                    EventLevel.WARNING,
                    issue=handle.number,
                )
        return added

    async def manage_project(
        self,
        title: str,
        handles: list[IssueHandle],
        project_number: Optional[int] = None,
    ) -> tuple[ProjectInfo, int]:
        """Use project ``project_number`` or create one named ``title``, then add ``handles``.

        Raises:
            ProjectError: When the project cannot be found or created. A
                status field that cannot be created only degrades the run.
        """
        status_field: Optional[StatusField] = None
        if project_number:
            project = await self.get_project(project_number)
            if project is None:
                raise ProjectError(f'Project #{project_number} not found for owner "{self.client.owner}"')
            self._emit(EventKind.MESSAGE, f"Using existing project #{project.number}: {project.title}")
        else:
            project = await self.create_project(title)
            self._emit(
                EventKind.MESSAGE, f"Created project #{project.number}: {project.title}", EventLevel.SUCCESS
            )
            try:
                status_field = await self.create_status_field(project.id)
            except ProjectError as exc:
                self._emit(EventKind.BEST_EFFORT_DEGRADED, str(exc), EventLevel.WARNING)
            else:
                self._emit(
                    EventKind.MESSAGE,
                    f"Created {STATUS_FIELD_NAME} field with {len(status_field.options)} columns",
                )

        added = await self.add_issues(project, handles, status_field)
        return project, added
