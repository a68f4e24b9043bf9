"""Async GitHub REST client implementing ``TrackerClient``.

Covers the endpoints the pipeline needs: issues, labels, comments,
sub-issues and issue dependencies, the repository lookups used by
``RepoManager`` and the GraphQL endpoint used by ``ProjectManager``.
A fresh ``httpx.AsyncClient`` is opened per request.
Transport and HTTP errors are converted into ``TrackerError`` carrying the
status code, so callers can apply their own failure policy.

Typical usage::

    client = GitHubClient(token="ghp_...", owner="acme", repo="shop")
    handle = await client.create_item("[INITIATIVE] Checkout", body, ["type:initiative"])
    await client.add_comment(handle, "Hello")
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from .base import IssueHandle, TrackerError

_API_VERSION = "2022-11-28"


class GitHubClient:
    """GitHub REST API client bound to one repository.

    ``repo`` may be empty for account-level calls (``request`` with an
    absolute path); it must be set before any issue method is used.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str = "",
        api_url: str = "https://api.github.com",
        timeout: int = 30,
    ) -> None:
        self.token = token
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.api_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": _API_VERSION,
            },
        )

    @property
    def _repo_path(self) -> str:
        if not self.repo:
            raise TrackerError("No target repository configured")
        return f"/repos/{self.owner}/{self.repo}"

    @staticmethod
    def _handle(data: dict[str, Any]) -> IssueHandle:
        return IssueHandle(
            number=data["number"],
            id=data.get("id", 0),
            node_id=data.get("node_id", ""),
            url=data.get("html_url", ""),
            title=data.get("title", ""),
            body=data.get("body") or "",
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:300]
        message = data.get("message", "") if isinstance(data, dict) else ""
        errors = data.get("errors") if isinstance(data, dict) else None
        if errors:
            details = ", ".join(
                e.get("message") or e.get("code", "") if isinstance(e, dict) else str(e)
                for e in errors
            )
            message = f"{message} ({details})"
        return message or response.text[:300]

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Perform one API call and return the decoded JSON body (or ``None``).

        Raises:
            TrackerError: On connection errors, timeouts and non-2xx responses.
        """
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json, params=params)
                response.raise_for_status()
                if response.status_code == 204 or not response.content:
                    return None
                return response.json()
        except httpx.ConnectError as exc:
            raise TrackerError(f"Cannot connect to GitHub at {self.api_url}.") from exc
        except httpx.TimeoutException as exc:
            raise TrackerError(f"GitHub request timed out after {self.timeout}s: {method} {path}") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise TrackerError(
                f"GitHub returned HTTP {status} for {method} {path}: {self._error_message(exc.response)}",
                status=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise TrackerError(f"GitHub request failed: {exc}") from exc

    # ------------------------------------------------------------------
    # TrackerClient
    # ------------------------------------------------------------------

    async def create_item(self, title: str, body: str, labels: list[str]) -> IssueHandle:
        data = await self.request(
            "POST", f"{self._repo_path}/issues", json={"title": title, "body": body, "labels": labels}
        )
        return self._handle(data)

    async def update_item_body(self, handle: IssueHandle, body: str) -> IssueHandle:
        data = await self.request("PATCH", f"{self._repo_path}/issues/{handle.number}", json={"body": body})
        return self._handle(data)

    async def add_label(self, handle: IssueHandle, name: str) -> None:
        await self.request(
            "POST", f"{self._repo_path}/issues/{handle.number}/labels", json={"labels": [name]}
        )

    async def ensure_label_exists(self, name: str, color: str, description: str = "") -> None:
        """Create a label; a 422 (name taken) raises with ``already_exists`` set."""
        try:
            await self.request(
                "POST",
                f"{self._repo_path}/labels",
                json={"name": name, "color": color, "description": description},
            )
        except TrackerError as exc:
            if exc.status == 422:
                raise TrackerError(str(exc), status=422, already_exists=True) from exc
            raise

    async def create_parent_child_link(self, parent: IssueHandle, child: IssueHandle) -> None:
        await self.request(
            "POST",
            f"{self._repo_path}/issues/{parent.number}/sub_issues",
            json={"sub_issue_id": child.id},
        )

    async def create_blocking_link(self, blocker: IssueHandle, blocked: IssueHandle) -> None:
        await self.request(
            "POST",
            f"{self._repo_path}/issues/{blocked.number}/dependencies/blocked_by",
            json={"issue_id": blocker.id},
        )

    async def add_comment(self, handle: IssueHandle, text: str) -> None:
        await self.request(
            "POST", f"{self._repo_path}/issues/{handle.number}/comments", json={"body": text}
        )

    # ------------------------------------------------------------------
    # Labels
    # ------------------------------------------------------------------

    async def list_labels(self) -> list[str]:
        """Names of all labels in the repository (follows pagination)."""
        names: list[str] = []
        page = 1
        while True:
            data = await self.request(
                "GET", f"{self._repo_path}/labels", params={"per_page": 100, "page": page}
            )
            names.extend(label["name"] for label in data or [])
            if not data or len(data) < 100:
                return names
            page += 1

    # ------------------------------------------------------------------
    # GraphQL
    # ------------------------------------------------------------------

    @property
    def _graphql_path(self) -> str:
        # GitHub Enterprise serves GraphQL at /api/graphql next to /api/v3.
        if self.api_url.endswith("/api/v3"):
            return self.api_url[: -len("v3")] + "graphql"
        return "/graphql"

    async def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Run a GraphQL query or mutation and return its ``data`` object.

        GraphQL reports failures in the body of a 200 response; those are
        raised as ``TrackerError`` too (``status=404`` for ``NOT_FOUND``).
        """
        payload = await self.request(
            "POST", self._graphql_path, json={"query": query, "variables": variables or {}}
        )
        payload = payload or {}
        errors = payload.get("errors")
        if errors:
            not_found = any(e.get("type") == "NOT_FOUND" for e in errors)
            raise TrackerError(
                "GitHub GraphQL error: " + "; ".join(e.get("message", "unknown error") for e in errors),
                status=404 if not_found else None,
            )
        return payload.get("data") or {}
