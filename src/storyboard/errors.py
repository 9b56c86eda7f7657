"""Exceptions raised by the project archive export/import subsystem."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .importer import ImportPhase


class DatabaseError(RuntimeError):
    """Raised by store implementations when the underlying driver fails."""


class StorageError(RuntimeError):
    """Raised by binary stores when an asset payload cannot be accessed."""


class ProjectArchiveError(RuntimeError):
    """Base class for failures surfaced by project export and import."""


class ProjectNotFoundError(ProjectArchiveError):
    """Raised when an export is requested for an unknown project."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class InvalidArchiveError(ProjectArchiveError):
    """Raised when uploaded bytes are not a readable project archive."""


class UnsupportedManifestVersionError(InvalidArchiveError):
    """Raised when ``manifestVersion`` is missing or not a supported value."""

    def __init__(self, manifest_version: Any) -> None:
        shown = "unknown" if manifest_version is None else manifest_version
        super().__init__(f"Unsupported manifest version: {shown}")
        self.manifest_version = manifest_version


class EntityCreationError(ProjectArchiveError):
    """Raised when a store write fails part way through an import.

    ``project_id`` names the partially created project (``None`` when the
    project row itself could not be created). ``rolled_back`` reports whether
    compensating cleanup removed it again.
    """

    def __init__(
        self,
        message: str,
        *,
        phase: "ImportPhase",
        project_id: str | None,
        rolled_back: bool = False,
    ) -> None:
        super().__init__(message)
        self.phase = phase
        self.project_id = project_id
        self.rolled_back = rolled_back


__all__ = [
    "DatabaseError",
    "EntityCreationError",
    "InvalidArchiveError",
    "ProjectArchiveError",
    "ProjectNotFoundError",
    "StorageError",
    "UnsupportedManifestVersionError",
]
