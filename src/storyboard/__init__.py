"""Export storyboard projects to portable archives and import them as new projects."""

from .errors import (
    DatabaseError,
    EntityCreationError,
    InvalidArchiveError,
    ProjectArchiveError,
    ProjectNotFoundError,
    StorageError,
    UnsupportedManifestVersionError,
)
from .exporter import ProjectExportArchive, build_manifest, export_project
from .importer import ImportPhase, ImportSummary, ProjectImporter, import_project
from .manifest import MANIFEST_VERSION, ExportManifest
from .settings import ArchiveSettings
from .storage import AssetStorage, LocalAssetStorage, S3AssetStorage
from .stores import StoryboardStore

__all__ = [
    "ArchiveSettings",
    "AssetStorage",
    "DatabaseError",
    "EntityCreationError",
    "ExportManifest",
    "ImportPhase",
    "ImportSummary",
    "InvalidArchiveError",
    "LocalAssetStorage",
    "MANIFEST_VERSION",
    "ProjectArchiveError",
    "ProjectExportArchive",
    "ProjectImporter",
    "ProjectNotFoundError",
    "S3AssetStorage",
    "StorageError",
    "StoryboardStore",
    "UnsupportedManifestVersionError",
    "build_manifest",
    "export_project",
    "import_project",
]
