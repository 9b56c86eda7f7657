"""Export a stored project as a portable archive."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from .archive import write_archive
from .errors import ProjectNotFoundError
from .manifest import (
    MANIFEST_VERSION,
    ExportManifest,
    ManifestAsset,
    ManifestChatMessage,
    ManifestGroup,
    ManifestProject,
    ManifestScene,
    ManifestTag,
)
from .storage import AssetStorage, stored_filename
from .stores import StoryboardStore

logger = logging.getLogger(__name__)

_FILENAME_UNSAFE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


@dataclass(frozen=True)
class ProjectExportArchive:
    """ZIP archive containing a project's manifest and asset binaries."""

    project_id: str
    filename: str
    content: bytes
    content_type: str
    size: int
    generated_at: datetime
    manifest: ExportManifest
    written_asset_ids: tuple[str, ...]
    missing_asset_ids: tuple[str, ...]


def build_manifest(store: StoryboardStore, project_id: str) -> ExportManifest:
    """Read the full entity graph of ``project_id`` into a manifest.

    The reads are independent queries rather than one snapshot, so an edit
    racing with the export can show up in some collections and not others.

    Raises:
        ProjectNotFoundError: If ``project_id`` does not exist.
    """

    project = store.get_project(project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)

    scenes = store.list_scenes(project_id)
    chat_messages = store.list_chat_messages(project_id)
    assets = store.list_assets(project_id)
    settings = store.get_settings(project_id)
    groups = store.list_groups(project_id)
    tags = store.list_tags(project_id)
    scene_groups = store.scene_group_ids(project_id)
    scene_tags = store.scene_tag_ids(project_id)

    return ExportManifest(
        manifest_version=MANIFEST_VERSION,
        project=ManifestProject(
            name=project.name,
            description=project.description,
            created_at=project.created_at,
            updated_at=project.updated_at,
        ),
        scenes=[
            ManifestScene(
                id=scene.identifier,
                description=scene.description,
                aspect_ratio=scene.aspect_ratio,
                order_index=scene.order_index,
                primary_image_asset_id=scene.primary_image_asset_id,
                primary_video_asset_id=scene.primary_video_asset_id,
                group_id=scene_groups.get(scene.identifier),
                tag_ids=list(scene_tags.get(scene.identifier, [])),
                created_at=scene.created_at,
                updated_at=scene.updated_at,
            )
            for scene in scenes
        ],
        chat_messages=[
            ManifestChatMessage(
                id=message.identifier,
                scene_id=message.scene_id,
                role=message.role,
                text=message.text,
                image_asset_id=message.image_asset_id,
                created_at=message.created_at,
            )
            for message in chat_messages
        ],
        assets=[
            ManifestAsset(
                id=asset.identifier,
                scene_id=asset.scene_id,
                type=asset.type,
                mime_type=asset.mime_type,
                file_name=asset.file_name,
                size=asset.size,
                checksum=asset.checksum,
                metadata=dict(asset.metadata) if asset.metadata is not None else None,
                created_at=asset.created_at,
            )
            for asset in assets
        ],
        groups=[
            ManifestGroup(
                id=group.identifier,
                name=group.name,
                color=group.color,
                order_index=group.order_index,
                created_at=group.created_at,
            )
            for group in groups
        ],
        tags=[
            ManifestTag(id=tag.identifier, name=tag.name, color=tag.color)
            for tag in tags
        ],
        settings=settings.data if settings is not None else None,
    )


def stored_asset_names(store: StoryboardStore, project_id: str) -> dict[str, str]:
    """Map each asset id of ``project_id`` to the name its binary is stored under.

    The name comes from the asset's recorded ``file_path``. Assets whose path
    has no usable file name are left out, so the writer falls back to
    ``<id><ext>`` for them.
    """

    names: dict[str, str] = {}
    for asset in store.list_assets(project_id):
        name = stored_filename(asset.file_path)
        if name is not None:
            names[asset.identifier] = name
    return names


def export_filename(project_name: str, generated_at: datetime) -> str:
    """Return the download name, e.g. ``my_storyboard_2024-05-01.zip``."""

    sanitised = _FILENAME_UNSAFE.sub("_", project_name).lower()
    day = generated_at.astimezone(timezone.utc).strftime("%Y-%m-%d")
    return f"{sanitised}_{day}.zip"


def export_project(
    store: StoryboardStore,
    storage: AssetStorage,
    project_id: str,
    *,
    compression_level: int = 9,
    now: datetime | None = None,
) -> ProjectExportArchive:
    """Build the manifest for ``project_id`` and package it with its assets."""

    manifest = build_manifest(store, project_id)
    generated_at = now or datetime.now(timezone.utc)

    buffer = io.BytesIO()
    result = write_archive(
        buffer,
        manifest,
        project_id=project_id,
        storage=storage,
        stored_names=stored_asset_names(store, project_id),
        compression_level=compression_level,
    )
    content = buffer.getvalue()

    logger.info(
        "Exported project %s: %d scene(s), %d asset binaries, %d missing",
        project_id,
        len(manifest.scenes),
        len(result.written_asset_ids),
        len(result.missing_asset_ids),
    )

    return ProjectExportArchive(
        project_id=project_id,
        filename=export_filename(manifest.project.name, generated_at),
        content=content,
        content_type="application/zip",
        size=len(content),
        generated_at=generated_at,
        manifest=manifest,
        written_asset_ids=result.written_asset_ids,
        missing_asset_ids=result.missing_asset_ids,
    )


__all__ = [
    "ProjectExportArchive",
    "build_manifest",
    "export_filename",
    "export_project",
    "stored_asset_names",
]
