"""Issue tracker materialization.

Key classes:
    GitHubClient              - REST client implementing TrackerClient
    PacedTracker              - Minimum delay between consecutive tracker calls
    SymbolicReferenceResolver - Symbolic id -> created issue handle
    StagedMaterializer        - Ancestors-first creation with parent-link fallback
    DependencyLinker          - Blocking links and dependency comments
    RepoManager / LabelManager - Repository and label preparation
    ProjectManager            - Projects v2 board for the created issues
"""

from .base import IssueHandle, TrackerClient, TrackerError
from .github_client import GitHubClient
from .labels import LabelManager
from .linker import DependencyLinker, LinkReport
from .materializer import (
    CreatedItem,
    FailedItem,
    MaterializationError,
    MaterializationFatal,
    StagedMaterializer,
    link_to_parent,
)
from .pacing import PacedTracker
from .projects import ProjectError, ProjectInfo, ProjectManager
from .repos import RepoManager, RepositoryError, RepositoryInfo
from .resolver import EntityKind, SymbolicReferenceResolver

__all__ = [
    # Interface
    "IssueHandle",
    "TrackerClient",
    "TrackerError",
    # GitHub
    "GitHubClient",
    "PacedTracker",
    "RepoManager",
    "RepositoryInfo",
    "RepositoryError",
    "LabelManager",
    "ProjectManager",
    "ProjectInfo",
    "ProjectError",
    # Materialization
    "EntityKind",
    "SymbolicReferenceResolver",
    "StagedMaterializer",
    "CreatedItem",
    "FailedItem",
    "MaterializationError",
    "MaterializationFatal",
    "link_to_parent",
    # Dependencies
    "DependencyLinker",
    "LinkReport",
]
