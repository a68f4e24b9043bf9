"""prd2issues configuration.

Centralised, typed configuration for the whole pipeline. All settings use
Pydantic v2 models so they can be validated at construction time and serialised
to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field


class ConfigError(Exception):
    """Raised when required settings (credentials, owner) are missing."""


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class GitHubConfig(BaseModel):
    """Settings for the GitHub tracker."""

    token: str = Field(default="", description="Personal access token with 'repo' scope")
    owner: str = Field(default="", description="User or organization that owns the repository")
    api_url: str = Field(default="https://api.github.com")
    default_labels: bool = Field(
        default=True, description="Create the default label set before materializing"
    )
    request_delay: float = Field(
        default=1.0, ge=0.0, description="Minimum pause in seconds after every tracker call"
    )
    timeout: int = Field(default=30, ge=1, description="Per-request timeout in seconds")
    projects: bool = Field(
        default=True, description="Add created issues to a GitHub Projects board after linking"
    )
    project_number: int | None = Field(
        default=None, ge=1, description="Existing project to use instead of creating one"
    )


class AnthropicConfig(BaseModel):
    """Settings for the generation backend (Anthropic Messages API)."""

    api_key: str = Field(default="")
    model: str = Field(default="claude-sonnet-4-20250514")
    max_tokens: int = Field(default=8192, ge=256, description="Output token budget per request")
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    base_url: str = Field(default="https://api.anthropic.com")
    timeout: int = Field(default=300, ge=10, description="Per-request timeout in seconds")


class OutputConfig(BaseModel):
    """Presentation knobs."""

    verbose: bool = Field(default=False)
    dry_run: bool = Field(default=False)
    log_file: Path | None = Field(default=Path("prd2issues.log"))


class Config(BaseModel):
    """Global prd2issues configuration.

    Instances are typically created once by the CLI entry point and then
    passed to ``Pipeline``.
    """

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    anthropic: AnthropicConfig = Field(default_factory=AnthropicConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    state_dir: Path = Field(default=Path(".prd2issues"))

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def failure_snapshot_path(self) -> Path:
        """Where the all-initiatives-failed diagnostic snapshot is written."""
        return self.state_dir / "failure.json"

    @property
    def partial_snapshot_path(self) -> Path:
        """Where the partial-success snapshot is written."""
        return self.state_dir / "partial.json"

    @property
    def issue_map_path(self) -> Path:
        """Symbolic id -> issue number map of the last materialization."""
        return self.state_dir / "issue-map.json"

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def require(self, github: bool = True, anthropic: bool = True) -> None:
        """Ensure the credentials needed by the requested stages are present.

        Raises:
            ConfigError: Naming every missing environment variable.
        """
        missing: list[str] = []
        if github:
            if not self.github.token:
                missing.append("GITHUB_TOKEN: your GitHub personal access token")
            if not self.github.owner:
                missing.append("GITHUB_OWNER: your GitHub username or organization")
        if anthropic and not self.anthropic.api_key:
            missing.append("ANTHROPIC_API_KEY: your Anthropic API key")
        if missing:
            lines = "\n".join(f"- {m}" for m in missing)
            raise ConfigError(
                "Configuration validation failed.\n\n"
                f"Please ensure the following environment variables are set:\n{lines}"
            )

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to JSON (credentials are not written).

        Args:
            path: Destination file. Defaults to ``<state_dir>/config.json``.

        Returns:
            The path where the file was written.
        """
        target = path or (self.state_dir / "config.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            self.model_dump_json(
                indent=2,
                exclude={"github": {"token"}, "anthropic": {"api_key"}},
            ),
            encoding="utf-8",
        )
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional here, see ``require``):
            GITHUB_TOKEN, GITHUB_OWNER, GITHUB_API_URL, GITHUB_DEFAULT_LABELS,
            GITHUB_REQUEST_DELAY, GITHUB_PROJECTS, GITHUB_PROJECT_NUMBER,
            ANTHROPIC_API_KEY, ANTHROPIC_MODEL,
            ANTHROPIC_MAX_TOKENS, ANTHROPIC_TEMPERATURE, ANTHROPIC_BASE_URL,
            OUTPUT_VERBOSE, OUTPUT_LOG_FILE, PRD2ISSUES_STATE_DIR.
        """
        github_kwargs: dict[str, Any] = {
            "token": os.environ.get("GITHUB_TOKEN", ""),
            "owner": os.environ.get("GITHUB_OWNER", ""),
            "default_labels": _env_flag("GITHUB_DEFAULT_LABELS", True),
        "projects": _env_flag("GITHUB_PROJECTS", True),
        }
        if os.environ.get("GITHUB_API_URL"):
            github_kwargs["api_url"] = os.environ["GITHUB_API_URL"]
        if os.environ.get("GITHUB_REQUEST_DELAY"):
            github_kwargs["request_delay"] = float(os.environ["GITHUB_REQUEST_DELAY"])
        if os.environ.get("GITHUB_PROJECT_NUMBER"):
            github_kwargs["project_number"] = int(os.environ["GITHUB_PROJECT_NUMBER"])

        anthropic_kwargs: dict[str, Any] = {"api_key": os.environ.get("ANTHROPIC_API_KEY", "")}
        if os.environ.get("ANTHROPIC_MODEL"):
            anthropic_kwargs["model"] = os.environ["ANTHROPIC_MODEL"]
        if os.environ.get("ANTHROPIC_MAX_TOKENS"):
            anthropic_kwargs["max_tokens"] = int(os.environ["ANTHROPIC_MAX_TOKENS"])
        if os.environ.get("ANTHROPIC_TEMPERATURE"):
            anthropic_kwargs["temperature"] = float(os.environ["ANTHROPIC_TEMPERATURE"])
        if os.environ.get("ANTHROPIC_BASE_URL"):
            anthropic_kwargs["base_url"] = os.environ["ANTHROPIC_BASE_URL"]

        output_kwargs: dict[str, Any] = {"verbose": _env_flag("OUTPUT_VERBOSE", False)}
        if "OUTPUT_LOG_FILE" in os.environ:
            log_file = os.environ["OUTPUT_LOG_FILE"]
            output_kwargs["log_file"] = Path(log_file) if log_file else None

        return cls(
            github=GitHubConfig(**github_kwargs),
            anthropic=AnthropicConfig(**anthropic_kwargs),
            output=OutputConfig(**output_kwargs),
            state_dir=Path(os.environ.get("PRD2ISSUES_STATE_DIR", ".prd2issues")),
        )

    def ensure_directories(self) -> None:
        """Create the state directory that snapshots and maps are written to."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
