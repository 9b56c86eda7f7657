"""Query/execute interface consumed by the archive subsystem plus a SQLite backend."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, Sequence

from .errors import DatabaseError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .settings import ArchiveSettings

Row = dict[str, Any]


@dataclass(frozen=True)
class QueryResult:
    """Rows returned by :meth:`Database.query`."""

    rows: list[Row] = field(default_factory=list)
    row_count: int = 0


class Database(Protocol):
    """Parameterised read/write access using positional ``?`` placeholders.

    Implementations translate the placeholder convention to their own dialect
    when needed; callers never depend on a specific SQL engine.
    """

    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute ``sql`` and return every matching row."""

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Row | None:
        """Execute ``sql`` and return the first matching row, if any."""

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a write statement and return the number of affected rows."""


SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  description TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scenes (
  id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  description TEXT NOT NULL,
  aspect_ratio TEXT NOT NULL CHECK (aspect_ratio IN ('16:9', '9:16', '1:1')),
  order_index INTEGER NOT NULL,
  primary_image_asset_id TEXT,
  primary_video_asset_id TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS assets (
  id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  scene_id TEXT,
  type TEXT NOT NULL CHECK (type IN ('image', 'video', 'attachment')),
  mime_type TEXT NOT NULL,
  file_name TEXT NOT NULL,
  file_path TEXT NOT NULL,
  size INTEGER NOT NULL,
  checksum TEXT,
  metadata TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
  FOREIGN KEY (scene_id) REFERENCES scenes(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS chat_messages (
  id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  scene_id TEXT,
  role TEXT NOT NULL CHECK (role IN ('user', 'model')),
  text TEXT NOT NULL,
  image_asset_id TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
  FOREIGN KEY (scene_id) REFERENCES scenes(id) ON DELETE SET NULL,
  FOREIGN KEY (image_asset_id) REFERENCES assets(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS settings (
  project_id TEXT PRIMARY KEY,
  data TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS scene_groups (
  id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  name TEXT NOT NULL,
  color TEXT,
  order_index INTEGER NOT NULL,
  created_at TEXT NOT NULL,
  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS scene_group_members (
  scene_id TEXT NOT NULL,
  group_id TEXT NOT NULL,
  PRIMARY KEY (scene_id, group_id),
  FOREIGN KEY (scene_id) REFERENCES scenes(id) ON DELETE CASCADE,
  FOREIGN KEY (group_id) REFERENCES scene_groups(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS scene_tags (
  id TEXT PRIMARY KEY,
  project_id TEXT NOT NULL,
  name TEXT NOT NULL,
  color TEXT,
  FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE,
  UNIQUE (project_id, name)
);

CREATE TABLE IF NOT EXISTS scene_tag_assignments (
  scene_id TEXT NOT NULL,
  tag_id TEXT NOT NULL,
  PRIMARY KEY (scene_id, tag_id),
  FOREIGN KEY (scene_id) REFERENCES scenes(id) ON DELETE CASCADE,
  FOREIGN KEY (tag_id) REFERENCES scene_tags(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_scenes_project_id ON scenes(project_id);
CREATE INDEX IF NOT EXISTS idx_assets_project_id ON assets(project_id);
CREATE INDEX IF NOT EXISTS idx_chat_messages_project_id ON chat_messages(project_id);
CREATE INDEX IF NOT EXISTS idx_scene_groups_project_id ON scene_groups(project_id);
CREATE INDEX IF NOT EXISTS idx_scene_tags_project_id ON scene_tags(project_id);
"""


class SqliteDatabase:
    """:class:`Database` backed by the standard library ``sqlite3`` driver."""

    def __init__(self, path: Path | str = ":memory:") -> None:
        self._path = str(path)
        if self._path != ":memory:":
            try:
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise DatabaseError(
                    f"Failed to prepare database directory for '{self._path}'."
                ) from exc

        try:
            # Autocommit; FastAPI may call in from its worker threads.
            self._connection = sqlite3.connect(
                self._path, isolation_level=None, check_same_thread=False
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
            if self._path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            raise DatabaseError(f"Failed to open database '{self._path}'.") from exc

        self._lock = threading.Lock()

    def initialise_schema(self) -> None:
        """Create the storyboard tables when they do not exist yet."""

        with self._lock:
            try:
                self._connection.executescript(SCHEMA)
            except sqlite3.Error as exc:
                raise DatabaseError("Failed to initialise database schema.") from exc

    def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        with self._lock:
            try:
                cursor = self._connection.execute(sql, tuple(params))
                rows = [dict(row) for row in cursor.fetchall()]
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc
        return QueryResult(rows=rows, row_count=len(rows))

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Row | None:
        with self._lock:
            try:
                row = self._connection.execute(sql, tuple(params)).fetchone()
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc
        return dict(row) if row is not None else None

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._lock:
            try:
                cursor = self._connection.execute(sql, tuple(params))
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc
        return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> "SqliteDatabase":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def connect_database(settings: "ArchiveSettings") -> SqliteDatabase:
    """Open the configured SQLite file and make sure its schema exists."""

    database = SqliteDatabase(settings.database_path)
    database.initialise_schema()
    return database


__all__ = [
    "Database",
    "QueryResult",
    "Row",
    "SCHEMA",
    "SqliteDatabase",
    "connect_database",
]
