"""Rebuild an exported project as a new, independently identified project."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .archive import ProjectArchive, open_archive
from .errors import (
    DatabaseError,
    EntityCreationError,
    InvalidArchiveError,
    StorageError,
)
from .manifest import ExportManifest
from .naming import resolve_project_name
from .remap import IdentityRemap, build_identity_remap
from .storage import AssetStorage, asset_filename
from .stores import StoryboardStore, new_identifier

logger = logging.getLogger(__name__)

# Errors that abort an import once the project row may exist.
_PHASE_ERRORS = (DatabaseError, StorageError, InvalidArchiveError, ValueError)


class ImportPhase(str, Enum):
    """Steps of an import, executed strictly in declaration order."""

    CREATE_PROJECT = "create_project"
    PREPARE_ASSET_STORAGE = "prepare_asset_storage"
    IMPORT_ASSETS = "import_assets"
    IMPORT_GROUPS = "import_groups"
    IMPORT_TAGS = "import_tags"
    IMPORT_SCENES = "import_scenes"
    PATCH_SCENE_REFERENCES = "patch_scene_references"
    IMPORT_CHAT_MESSAGES = "import_chat_messages"
    IMPORT_SETTINGS = "import_settings"


@dataclass(frozen=True)
class ImportSummary:
    """Outcome of a successful import.

    ``asset_count`` is the number of assets listed in the manifest, including
    those skipped because the archive carried no binary for them.
    """

    project_id: str
    project_name: str
    scene_count: int
    asset_count: int
    chat_message_count: int
    group_count: int = 0
    tag_count: int = 0
    imported_asset_count: int = 0
    skipped_asset_ids: tuple[str, ...] = ()


@dataclass
class _ImportRun:
    archive: ProjectArchive
    remap: IdentityRemap
    project_id: str | None = None
    project_name: str | None = None
    imported_asset_ids: list[str] = field(default_factory=list)
    skipped_asset_ids: list[str] = field(default_factory=list)

    @property
    def manifest(self) -> ExportManifest:
        return self.archive.manifest

    def require_project(self) -> str:
        if self.project_id is None:
            raise DatabaseError("Import has no target project.")
        return self.project_id


class ProjectImporter:
    """Replay an archive's entity graph against a store and a binary store.

    Every entity is created under a freshly drawn id and every reference is
    rewritten through the identity tables. References that do not resolve,
    either because the manifest never listed the target or because its
    binary was missing, become ``None``.

    Validation problems are raised before anything is written. A failure
    after the project row exists leaves a partial project behind unless
    ``rollback_on_failure`` is set, in which case the project's rows and
    binaries are deleted again before :class:`EntityCreationError` is raised.
    """

    def __init__(
        self,
        store: StoryboardStore,
        storage: AssetStorage,
        *,
        rollback_on_failure: bool = False,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._storage = storage
        self._rollback_on_failure = rollback_on_failure
        self._id_factory = id_factory or new_identifier

    def import_archive(self, data: bytes) -> ImportSummary:
        with open_archive(data) as archive:
            run = _ImportRun(
                archive=archive,
                remap=build_identity_remap(archive.manifest, id_factory=self._id_factory),
            )
            logger.info(
                "Importing project '%s' (%d scene(s), %d asset(s))",
                archive.manifest.project.name,
                len(archive.manifest.scenes),
                len(archive.manifest.assets),
            )
            self._run_phases(run)

        manifest = run.manifest
        summary = ImportSummary(
            project_id=run.require_project(),
            project_name=run.project_name or manifest.project.name,
            scene_count=len(manifest.scenes),
            asset_count=len(manifest.assets),
            chat_message_count=len(manifest.chat_messages),
            group_count=len(manifest.groups),
            tag_count=len(manifest.tags),
            imported_asset_count=len(run.imported_asset_ids),
            skipped_asset_ids=tuple(run.skipped_asset_ids),
        )
        logger.info(
            "Imported project %s as '%s' (%d asset(s) skipped)",
            summary.project_id,
            summary.project_name,
            len(summary.skipped_asset_ids),
        )
        return summary

    def _run_phases(self, run: _ImportRun) -> None:
        steps: tuple[tuple[ImportPhase, Callable[[_ImportRun], None]], ...] = (
            (ImportPhase.CREATE_PROJECT, self._create_project),
            (ImportPhase.PREPARE_ASSET_STORAGE, self._prepare_asset_storage),
            (ImportPhase.IMPORT_ASSETS, self._import_assets),
            (ImportPhase.IMPORT_GROUPS, self._import_groups),
            (ImportPhase.IMPORT_TAGS, self._import_tags),
            (ImportPhase.IMPORT_SCENES, self._import_scenes),
            (ImportPhase.PATCH_SCENE_REFERENCES, self._patch_scene_references),
            (ImportPhase.IMPORT_CHAT_MESSAGES, self._import_chat_messages),
            (ImportPhase.IMPORT_SETTINGS, self._import_settings),
        )
        for phase, step in steps:
            logger.debug("Import phase %s", phase.value)
            try:
                step(run)
            except _PHASE_ERRORS as exc:
                raise self._abort(run, phase, exc) from exc

    def _abort(
        self, run: _ImportRun, phase: ImportPhase, exc: Exception
    ) -> EntityCreationError:
        logger.error(
            "Import failed during %s for project %s",
            phase.value,
            run.project_id,
            exc_info=exc,
        )
        rolled_back = False
        if self._rollback_on_failure and run.project_id is not None:
            rolled_back = self._roll_back(run.project_id)

        if run.project_id is None:
            message = f"Import failed during {phase.value}: {exc}"
        elif rolled_back:
            message = (
                f"Import failed during {phase.value}: {exc}. "
                "The partially imported project was removed."
            )
        else:
            message = (
                f"Import failed during {phase.value}: {exc}. "
                f"Project {run.project_id} may be incomplete."
            )
        return EntityCreationError(
            message,
            phase=phase,
            project_id=run.project_id,
            rolled_back=rolled_back,
        )

    def _roll_back(self, project_id: str) -> bool:
        try:
            self._store.delete_project(project_id)
            self._storage.delete_project(project_id)
        except (DatabaseError, StorageError):
            logger.exception("Rollback of partially imported project %s failed", project_id)
            return False
        logger.info("Rolled back partially imported project %s", project_id)
        return True

    # Phases

    def _create_project(self, run: _ImportRun) -> None:
        source = run.manifest.project
        name = resolve_project_name(source.name.strip(), self._store.list_project_names())
        project = self._store.create_project(
            name, source.description, identifier=self._id_factory()
        )
        run.project_id = project.identifier
        run.project_name = project.name

    def _prepare_asset_storage(self, run: _ImportRun) -> None:
        self._storage.ensure_project(run.require_project())

    def _import_assets(self, run: _ImportRun) -> None:
        project_id = run.require_project()
        for asset in run.manifest.assets:
            content = run.archive.read_asset(asset)
            if content is None:
                logger.warning(
                    "Asset %s (%s) has no binary in the archive; skipping it",
                    asset.id,
                    asset.file_name,
                )
                run.skipped_asset_ids.append(asset.id)
                continue

            new_id = run.remap.assets[asset.id]
            stored_path = self._storage.write(
                project_id, asset_filename(new_id, asset.file_name), content
            )
            # sceneId is patched once the scenes exist.
            self._store.create_asset(
                project_id,
                asset_type=asset.type,
                mime_type=asset.mime_type,
                file_name=asset.file_name,
                file_path=stored_path,
                size=asset.size,
                checksum=asset.checksum,
                metadata=asset.metadata,
                identifier=new_id,
            )
            run.imported_asset_ids.append(asset.id)

        if run.skipped_asset_ids:
            run.remap = run.remap.without_assets(run.skipped_asset_ids)

    def _import_groups(self, run: _ImportRun) -> None:
        project_id = run.require_project()
        for group in run.manifest.groups:
            self._store.create_group(
                project_id,
                name=group.name,
                color=group.color,
                order_index=group.order_index,
                identifier=run.remap.groups[group.id],
            )

    def _import_tags(self, run: _ImportRun) -> None:
        project_id = run.require_project()
        for tag in run.manifest.tags:
            self._store.create_tag(
                project_id,
                name=tag.name,
                color=tag.color,
                identifier=run.remap.tags[tag.id],
            )

    def _import_scenes(self, run: _ImportRun) -> None:
        project_id = run.require_project()
        for scene in run.manifest.scenes:
            self._store.create_scene(
                project_id,
                description=scene.description,
                aspect_ratio=scene.aspect_ratio,
                order_index=scene.order_index,
                identifier=run.remap.scenes[scene.id],
            )

    def _patch_scene_references(self, run: _ImportRun) -> None:
        remap = run.remap
        for scene in run.manifest.scenes:
            scene_id = remap.scenes[scene.id]

            image_asset_id = remap.asset(scene.primary_image_asset_id)
            video_asset_id = remap.asset(scene.primary_video_asset_id)
            if image_asset_id is not None or video_asset_id is not None:
                self._store.set_scene_primary_assets(
                    scene_id,
                    image_asset_id=image_asset_id,
                    video_asset_id=video_asset_id,
                )

            group_id = remap.group(scene.group_id)
            if group_id is not None:
                self._store.add_scene_to_group(group_id, scene_id)

            tag_ids = remap.tag_list(scene.tag_ids)
            if tag_ids:
                self._store.assign_tags_to_scene(scene_id, tag_ids)

        for asset in run.manifest.assets:
            asset_id = remap.asset(asset.id)
            scene_id = remap.scene(asset.scene_id)
            if asset_id is not None and scene_id is not None:
                self._store.set_asset_scene(asset_id, scene_id)

    def _import_chat_messages(self, run: _ImportRun) -> None:
        project_id = run.require_project()
        remap = run.remap
        for message in run.manifest.chat_messages:
            self._store.append_chat_message(
                project_id,
                role=message.role,
                text=message.text,
                scene_id=remap.scene(message.scene_id),
                image_asset_id=remap.asset(message.image_asset_id),
                identifier=remap.chat_messages[message.id],
            )

    def _import_settings(self, run: _ImportRun) -> None:
        settings = run.manifest.settings
        if settings is not None:
            self._store.upsert_settings(run.require_project(), settings)


def import_project(
    store: StoryboardStore,
    storage: AssetStorage,
    data: bytes,
    **options: Any,
) -> ImportSummary:
    """Import ``data`` with a one-off :class:`ProjectImporter`."""

    return ProjectImporter(store, storage, **options).import_archive(data)


__all__ = ["ImportPhase", "ImportSummary", "ProjectImporter", "import_project"]
