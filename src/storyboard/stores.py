"""Entity store for projects, scenes, assets, chat, groups, tags and settings."""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

from .database import Database, Row
from .errors import DatabaseError


@dataclass(frozen=True)
class ProjectRecord:
    identifier: str
    name: str
    description: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class SceneRecord:
    identifier: str
    project_id: str
    description: str
    aspect_ratio: str
    order_index: int
    primary_image_asset_id: str | None
    primary_video_asset_id: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class AssetRecord:
    identifier: str
    project_id: str
    scene_id: str | None
    type: str
    mime_type: str
    file_name: str
    file_path: str
    size: int
    checksum: str | None
    metadata: Mapping[str, Any] | None
    created_at: str


@dataclass(frozen=True)
class ChatMessageRecord:
    identifier: str
    project_id: str
    scene_id: str | None
    role: str
    text: str
    image_asset_id: str | None
    created_at: str


@dataclass(frozen=True)
class SceneGroupRecord:
    identifier: str
    project_id: str
    name: str
    color: str | None
    order_index: int
    created_at: str


@dataclass(frozen=True)
class SceneTagRecord:
    identifier: str
    project_id: str
    name: str
    color: str | None


@dataclass(frozen=True)
class SettingsRecord:
    project_id: str
    data: Any
    updated_at: str


def new_identifier() -> str:
    """Return a fresh random identifier."""

    return str(uuid.uuid4())


class _UtcClock:
    """Strictly increasing UTC timestamps so createdAt order follows insert order."""

    def __init__(self) -> None:
        self._last: datetime | None = None
        self._lock = threading.Lock()

    def now(self) -> str:
        with self._lock:
            current = datetime.now(timezone.utc)
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
        return current.isoformat(timespec="microseconds").replace("+00:00", "Z")


_PROJECT_COLUMNS = "id, name, description, created_at, updated_at"
_SCENE_COLUMNS = (
    "id, project_id, description, aspect_ratio, order_index, "
    "primary_image_asset_id, primary_video_asset_id, created_at, updated_at"
)
_ASSET_COLUMNS = (
    "id, project_id, scene_id, type, mime_type, file_name, file_path, size, "
    "checksum, metadata, created_at"
)
_CHAT_COLUMNS = "id, project_id, scene_id, role, text, image_asset_id, created_at"
_GROUP_COLUMNS = "id, project_id, name, color, order_index, created_at"
_TAG_COLUMNS = "id, project_id, name, color"


class StoryboardStore:
    """Read and write storyboard entities through a :class:`Database`."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._clock = _UtcClock()

    @property
    def database(self) -> Database:
        return self._db

    # Projects

    def create_project(
        self,
        name: str,
        description: str | None = None,
        *,
        identifier: str | None = None,
    ) -> ProjectRecord:
        if not isinstance(name, str):
            raise ValueError("Project name must be provided as a string.")
        trimmed_name = name.strip()
        if not trimmed_name:
            raise ValueError("Project name must be a non-empty string.")

        project_id = identifier or new_identifier()
        timestamp = self._clock.now()
        self._db.execute(
            "INSERT INTO projects (id, name, description, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (project_id, trimmed_name, description, timestamp, timestamp),
        )
        return self._require_project(project_id)

    def get_project(self, project_id: str) -> ProjectRecord | None:
        row = self._db.query_one(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = ?", (project_id,)
        )
        return _project_from_row(row) if row is not None else None

    def list_projects(self) -> list[ProjectRecord]:
        result = self._db.query(
            f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY updated_at DESC, id ASC"
        )
        return [_project_from_row(row) for row in result.rows]

    def list_project_names(self) -> list[str]:
        result = self._db.query("SELECT name FROM projects")
        return [str(row["name"]) for row in result.rows]

    def delete_project(self, project_id: str) -> bool:
        """Delete a project and every row that belongs to it.

        Child rows are removed explicitly so the outcome does not depend on
        the backend enforcing ``ON DELETE CASCADE``.
        """

        scene_subquery = "SELECT id FROM scenes WHERE project_id = ?"
        self._db.execute(
            f"DELETE FROM scene_tag_assignments WHERE scene_id IN ({scene_subquery})",
            (project_id,),
        )
        self._db.execute(
            f"DELETE FROM scene_group_members WHERE scene_id IN ({scene_subquery})",
            (project_id,),
        )
        for table in ("chat_messages", "settings"):
            self._db.execute(f"DELETE FROM {table} WHERE project_id = ?", (project_id,))
        self._db.execute(
            "UPDATE assets SET scene_id = NULL WHERE project_id = ?", (project_id,)
        )
        for table in ("scenes", "assets", "scene_groups", "scene_tags"):
            self._db.execute(f"DELETE FROM {table} WHERE project_id = ?", (project_id,))
        changes = self._db.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        return changes > 0

    # Scenes

    def create_scene(
        self,
        project_id: str,
        *,
        description: str,
        aspect_ratio: str,
        order_index: int | None = None,
        identifier: str | None = None,
    ) -> SceneRecord:
        if order_index is None:
            row = self._db.query_one(
                "SELECT COALESCE(MAX(order_index), -1) AS max_order "
                "FROM scenes WHERE project_id = ?",
                (project_id,),
            )
            order_index = int(row["max_order"] if row else -1) + 1

        scene_id = identifier or new_identifier()
        timestamp = self._clock.now()
        self._db.execute(
            "INSERT INTO scenes (id, project_id, description, aspect_ratio, order_index, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (scene_id, project_id, description, aspect_ratio, order_index, timestamp, timestamp),
        )
        row = self._db.query_one(
            f"SELECT {_SCENE_COLUMNS} FROM scenes WHERE id = ?", (scene_id,)
        )
        if row is None:
            raise DatabaseError(f"Failed to create scene for project '{project_id}'.")
        return _scene_from_row(row)

    def list_scenes(self, project_id: str) -> list[SceneRecord]:
        result = self._db.query(
            f"SELECT {_SCENE_COLUMNS} FROM scenes WHERE project_id = ? "
            "ORDER BY order_index ASC, created_at ASC",
            (project_id,),
        )
        return [_scene_from_row(row) for row in result.rows]

    def set_scene_primary_assets(
        self,
        scene_id: str,
        *,
        image_asset_id: str | None,
        video_asset_id: str | None,
    ) -> int:
        return self._db.execute(
            "UPDATE scenes SET primary_image_asset_id = ?, primary_video_asset_id = ?, "
            "updated_at = ? WHERE id = ?",
            (image_asset_id, video_asset_id, self._clock.now(), scene_id),
        )

    def scene_group_ids(self, project_id: str) -> dict[str, str | None]:
        """Return the group membership of every scene in ``project_id``."""

        result = self._db.query(
            "SELECT s.id AS scene_id, sgm.group_id AS group_id FROM scenes s "
            "LEFT JOIN scene_group_members sgm ON s.id = sgm.scene_id "
            "WHERE s.project_id = ? ORDER BY s.order_index ASC",
            (project_id,),
        )
        memberships: dict[str, str | None] = {}
        for row in result.rows:
            # A scene belongs to one group; keep the first row if data disagrees.
            memberships.setdefault(row["scene_id"], row["group_id"])
        return memberships

    def scene_tag_ids(self, project_id: str) -> dict[str, list[str]]:
        """Return the tag ids assigned to every scene in ``project_id``."""

        result = self._db.query(
            "SELECT sta.scene_id AS scene_id, sta.tag_id AS tag_id "
            "FROM scene_tag_assignments sta "
            "JOIN scenes s ON s.id = sta.scene_id "
            "JOIN scene_tags t ON t.id = sta.tag_id "
            "WHERE s.project_id = ? ORDER BY t.name ASC",
            (project_id,),
        )
        assignments: dict[str, list[str]] = {}
        for row in result.rows:
            assignments.setdefault(row["scene_id"], []).append(row["tag_id"])
        return assignments

    # Assets

    def create_asset(
        self,
        project_id: str,
        *,
        asset_type: str,
        mime_type: str,
        file_name: str,
        file_path: str,
        size: int,
        checksum: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        scene_id: str | None = None,
        identifier: str | None = None,
    ) -> AssetRecord:
        asset_id = identifier or new_identifier()
        encoded_metadata = json.dumps(dict(metadata)) if metadata is not None else None
        self._db.execute(
            "INSERT INTO assets (id, project_id, scene_id, type, mime_type, file_name, "
            "file_path, size, checksum, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                asset_id,
                project_id,
                scene_id,
                asset_type,
                mime_type,
                file_name,
                file_path,
                size,
                checksum,
                encoded_metadata,
                self._clock.now(),
            ),
        )
        row = self._db.query_one(
            f"SELECT {_ASSET_COLUMNS} FROM assets WHERE id = ?", (asset_id,)
        )
        if row is None:
            raise DatabaseError(f"Failed to create asset for project '{project_id}'.")
        return _asset_from_row(row)

    def list_assets(self, project_id: str) -> list[AssetRecord]:
        result = self._db.query(
            f"SELECT {_ASSET_COLUMNS} FROM assets WHERE project_id = ? "
            "ORDER BY created_at ASC",
            (project_id,),
        )
        return [_asset_from_row(row) for row in result.rows]

    def set_asset_scene(self, asset_id: str, scene_id: str | None) -> int:
        return self._db.execute(
            "UPDATE assets SET scene_id = ? WHERE id = ?", (scene_id, asset_id)
        )

    # Chat

    def append_chat_message(
        self,
        project_id: str,
        *,
        role: str,
        text: str,
        scene_id: str | None = None,
        image_asset_id: str | None = None,
        identifier: str | None = None,
    ) -> ChatMessageRecord:
        message_id = identifier or new_identifier()
        self._db.execute(
            "INSERT INTO chat_messages (id, project_id, scene_id, role, text, "
            "image_asset_id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (message_id, project_id, scene_id, role, text, image_asset_id, self._clock.now()),
        )
        row = self._db.query_one(
            f"SELECT {_CHAT_COLUMNS} FROM chat_messages WHERE id = ?", (message_id,)
        )
        if row is None:
            raise DatabaseError("Failed to append chat message.")
        return _chat_from_row(row)

    def list_chat_messages(self, project_id: str) -> list[ChatMessageRecord]:
        result = self._db.query(
            f"SELECT {_CHAT_COLUMNS} FROM chat_messages WHERE project_id = ? "
            "ORDER BY created_at ASC",
            (project_id,),
        )
        return [_chat_from_row(row) for row in result.rows]

    # Groups

    def create_group(
        self,
        project_id: str,
        *,
        name: str,
        color: str | None = None,
        order_index: int | None = None,
        identifier: str | None = None,
    ) -> SceneGroupRecord:
        if order_index is None:
            row = self._db.query_one(
                "SELECT COALESCE(MAX(order_index), -1) AS max_order "
                "FROM scene_groups WHERE project_id = ?",
                (project_id,),
            )
            order_index = int(row["max_order"] if row else -1) + 1

        group_id = identifier or new_identifier()
        self._db.execute(
            "INSERT INTO scene_groups (id, project_id, name, color, order_index, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (group_id, project_id, name, color, order_index, self._clock.now()),
        )
        row = self._db.query_one(
            f"SELECT {_GROUP_COLUMNS} FROM scene_groups WHERE id = ?", (group_id,)
        )
        if row is None:
            raise DatabaseError(f"Failed to create scene group for project '{project_id}'.")
        return _group_from_row(row)

    def list_groups(self, project_id: str) -> list[SceneGroupRecord]:
        result = self._db.query(
            f"SELECT {_GROUP_COLUMNS} FROM scene_groups WHERE project_id = ? "
            "ORDER BY order_index ASC, created_at ASC",
            (project_id,),
        )
        return [_group_from_row(row) for row in result.rows]

    def add_scene_to_group(self, group_id: str, scene_id: str) -> None:
        """Move ``scene_id`` into ``group_id``, leaving any previous group."""

        self._db.execute(
            "DELETE FROM scene_group_members WHERE scene_id = ?", (scene_id,)
        )
        self._db.execute(
            "INSERT INTO scene_group_members (scene_id, group_id) VALUES (?, ?)",
            (scene_id, group_id),
        )

    # Tags

    def create_tag(
        self,
        project_id: str,
        *,
        name: str,
        color: str | None = None,
        identifier: str | None = None,
    ) -> SceneTagRecord:
        tag_id = identifier or new_identifier()
        self._db.execute(
            "INSERT INTO scene_tags (id, project_id, name, color) VALUES (?, ?, ?, ?)",
            (tag_id, project_id, name, color),
        )
        row = self._db.query_one(
            f"SELECT {_TAG_COLUMNS} FROM scene_tags WHERE id = ?", (tag_id,)
        )
        if row is None:
            raise DatabaseError(f"Failed to create scene tag for project '{project_id}'.")
        return _tag_from_row(row)

    def list_tags(self, project_id: str) -> list[SceneTagRecord]:
        result = self._db.query(
            f"SELECT {_TAG_COLUMNS} FROM scene_tags WHERE project_id = ? ORDER BY name ASC",
            (project_id,),
        )
        return [_tag_from_row(row) for row in result.rows]

    def assign_tags_to_scene(self, scene_id: str, tag_ids: Iterable[str]) -> None:
        for tag_id in tag_ids:
            existing = self._db.query_one(
                "SELECT scene_id FROM scene_tag_assignments WHERE scene_id = ? AND tag_id = ?",
                (scene_id, tag_id),
            )
            if existing is not None:
                continue
            self._db.execute(
                "INSERT INTO scene_tag_assignments (scene_id, tag_id) VALUES (?, ?)",
                (scene_id, tag_id),
            )

    # Settings

    def upsert_settings(self, project_id: str, data: Any) -> SettingsRecord:
        encoded = json.dumps(data if data is not None else {})
        timestamp = self._clock.now()
        changes = self._db.execute(
            "UPDATE settings SET data = ?, updated_at = ? WHERE project_id = ?",
            (encoded, timestamp, project_id),
        )
        if changes == 0:
            self._db.execute(
                "INSERT INTO settings (project_id, data, updated_at) VALUES (?, ?, ?)",
                (project_id, encoded, timestamp),
            )
        record = self.get_settings(project_id)
        if record is None:
            raise DatabaseError(f"Failed to store settings for project '{project_id}'.")
        return record

    def get_settings(self, project_id: str) -> SettingsRecord | None:
        row = self._db.query_one(
            "SELECT project_id, data, updated_at FROM settings WHERE project_id = ?",
            (project_id,),
        )
        if row is None:
            return None
        return SettingsRecord(
            project_id=row["project_id"],
            data=json.loads(row["data"] or "{}"),
            updated_at=row["updated_at"],
        )

    def _require_project(self, project_id: str) -> ProjectRecord:
        record = self.get_project(project_id)
        if record is None:
            raise DatabaseError(f"Failed to create project '{project_id}'.")
        return record


def _project_from_row(row: Row) -> ProjectRecord:
    return ProjectRecord(
        identifier=row["id"],
        name=row["name"],
        description=row.get("description"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _scene_from_row(row: Row) -> SceneRecord:
    return SceneRecord(
        identifier=row["id"],
        project_id=row["project_id"],
        description=row["description"],
        aspect_ratio=row["aspect_ratio"],
        order_index=int(row["order_index"]),
        primary_image_asset_id=row.get("primary_image_asset_id"),
        primary_video_asset_id=row.get("primary_video_asset_id"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _asset_from_row(row: Row) -> AssetRecord:
    metadata_raw = row.get("metadata")
    return AssetRecord(
        identifier=row["id"],
        project_id=row["project_id"],
        scene_id=row.get("scene_id"),
        type=row["type"],
        mime_type=row["mime_type"],
        file_name=row["file_name"],
        file_path=row["file_path"],
        size=int(row["size"]),
        checksum=row.get("checksum"),
        metadata=json.loads(metadata_raw) if metadata_raw else None,
        created_at=row["created_at"],
    )


def _chat_from_row(row: Row) -> ChatMessageRecord:
    return ChatMessageRecord(
        identifier=row["id"],
        project_id=row["project_id"],
        scene_id=row.get("scene_id"),
        role=row["role"],
        text=row["text"],
        image_asset_id=row.get("image_asset_id"),
        created_at=row["created_at"],
    )


def _group_from_row(row: Row) -> SceneGroupRecord:
    return SceneGroupRecord(
        identifier=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        color=row.get("color"),
        order_index=int(row["order_index"]),
        created_at=row["created_at"],
    )


def _tag_from_row(row: Row) -> SceneTagRecord:
    return SceneTagRecord(
        identifier=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        color=row.get("color"),
    )


__all__ = [
    "AssetRecord",
    "ChatMessageRecord",
    "ProjectRecord",
    "SceneGroupRecord",
    "SceneRecord",
    "SceneTagRecord",
    "SettingsRecord",
    "StoryboardStore",
    "new_identifier",
]
