"""Configuration helpers for the project archive service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping, cast

StorageBackend = Literal["local", "s3"]

_DEFAULT_MAX_ARCHIVE_SIZE_MB = 500
_DEFAULT_COMPRESSION_LEVEL = 9


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None) -> str | None:
    if value is None:
        return None

    trimmed = value.strip()
    return trimmed or None


def _parse_int(
    value: str | None,
    *,
    name: str,
    default: int,
    minimum: int,
    maximum: int | None = None,
) -> int:
    if value is None or not value.strip():
        return default

    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer.") from exc

    if parsed < minimum:
        raise ValueError(f"{name} must be at least {minimum}.")
    if maximum is not None and parsed > maximum:
        raise ValueError(f"{name} must be at most {maximum}.")
    return parsed


def _parse_flag(value: str | None, *, name: str) -> bool:
    if value is None or not value.strip():
        return False

    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"{name} must be 'true' or 'false'.")


@dataclass(frozen=True)
class ArchiveSettings:
    """Deployment settings for project export and import.

    Values are read from ``STORYBOARD_*`` environment variables so the service
    can be configured without modifying application code. Paths are expanded
    to support ``~`` prefixes while empty strings are treated as if the
    variable was unset.
    """

    data_dir: Path = Path("data")
    db_path: Path | None = None
    max_archive_size_mb: int = _DEFAULT_MAX_ARCHIVE_SIZE_MB
    compression_level: int = _DEFAULT_COMPRESSION_LEVEL
    rollback_on_failure: bool = False
    storage_backend: StorageBackend = "local"
    s3_bucket: str | None = None
    s3_prefix: str | None = None
    s3_region: str | None = None
    s3_endpoint_url: str | None = None

    @property
    def database_path(self) -> Path:
        """Return the SQLite file, defaulting to ``<data_dir>/storyboard.db``."""

        if self.db_path is not None:
            return self.db_path
        return self.data_dir / "storyboard.db"

    @property
    def max_archive_size_bytes(self) -> int:
        return self.max_archive_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ArchiveSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        data_dir = _normalise_path(source.get("STORYBOARD_DATA_DIR")) or Path("data")
        db_path = _normalise_path(source.get("STORYBOARD_DB_PATH"))

        max_archive_size_mb = _parse_int(
            source.get("STORYBOARD_MAX_ARCHIVE_SIZE_MB"),
            name="STORYBOARD_MAX_ARCHIVE_SIZE_MB",
            default=_DEFAULT_MAX_ARCHIVE_SIZE_MB,
            minimum=1,
        )
        compression_level = _parse_int(
            source.get("STORYBOARD_ARCHIVE_COMPRESSION_LEVEL"),
            name="STORYBOARD_ARCHIVE_COMPRESSION_LEVEL",
            default=_DEFAULT_COMPRESSION_LEVEL,
            minimum=0,
            maximum=9,
        )
        rollback_on_failure = _parse_flag(
            source.get("STORYBOARD_IMPORT_ROLLBACK"),
            name="STORYBOARD_IMPORT_ROLLBACK",
        )

        backend_raw = (
            _normalise_string(source.get("STORYBOARD_STORAGE_BACKEND")) or "local"
        ).lower()
        if backend_raw not in ("local", "s3"):
            raise ValueError("STORYBOARD_STORAGE_BACKEND must be 'local' or 's3'.")
        storage_backend = cast(StorageBackend, backend_raw)

        s3_bucket = _normalise_string(source.get("STORYBOARD_S3_BUCKET"))
        if storage_backend == "s3" and s3_bucket is None:
            raise ValueError(
                "STORYBOARD_S3_BUCKET is required when STORYBOARD_STORAGE_BACKEND is 's3'."
            )

        return cls(
            data_dir=data_dir,
            db_path=db_path,
            max_archive_size_mb=max_archive_size_mb,
            compression_level=compression_level,
            rollback_on_failure=rollback_on_failure,
            storage_backend=storage_backend,
            s3_bucket=s3_bucket,
            s3_prefix=_normalise_string(source.get("STORYBOARD_S3_PREFIX")),
            s3_region=_normalise_string(source.get("STORYBOARD_S3_REGION")),
            s3_endpoint_url=_normalise_string(source.get("STORYBOARD_S3_ENDPOINT_URL")),
        )


__all__ = ["ArchiveSettings", "StorageBackend"]
