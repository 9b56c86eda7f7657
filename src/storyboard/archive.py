"""Reading and writing project archives (``project.json`` plus asset binaries)."""

from __future__ import annotations

import io
import json
import logging
import zipfile
import zlib
from collections.abc import Mapping
from dataclasses import dataclass
from typing import IO, Any

from pydantic import ValidationError

from .errors import InvalidArchiveError, UnsupportedManifestVersionError
from .manifest import (
    MANIFEST_FILENAME,
    SUPPORTED_MANIFEST_VERSIONS,
    ExportManifest,
    ManifestAsset,
    asset_entry_name,
)
from .storage import AssetStorage, asset_filename

logger = logging.getLogger(__name__)

# Raised by zipfile for damaged, encrypted or unsupported entries.
_ENTRY_READ_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
    OSError,
)


@dataclass(frozen=True)
class ArchiveWriteResult:
    """Which asset binaries made it into a written archive."""

    written_asset_ids: tuple[str, ...] = ()
    missing_asset_ids: tuple[str, ...] = ()


def serialise_manifest(manifest: ExportManifest) -> bytes:
    """Return the pretty-printed UTF-8 JSON stored as ``project.json``."""

    text = json.dumps(manifest.to_payload(), indent=2, ensure_ascii=False)
    return text.encode("utf-8")


def write_archive(
    destination: IO[bytes],
    manifest: ExportManifest,
    *,
    project_id: str,
    storage: AssetStorage,
    stored_names: Mapping[str, str] | None = None,
    compression_level: int = 9,
) -> ArchiveWriteResult:
    """Stream ``manifest`` and the project's asset binaries into ``destination``.

    The manifest is serialised before anything is written, so a manifest that
    cannot be encoded fails without emitting a partial archive. Assets whose
    binary is no longer in ``storage`` are left out of the archive while their
    metadata stays in the manifest.

    ``stored_names`` maps asset ids to the name each binary has in
    ``storage``. Assets without an entry are looked up as ``<id><ext>``. The
    archive entry is always ``assets/<id><ext>`` whatever the stored name.
    """

    manifest_bytes = serialise_manifest(manifest)

    locations = stored_names or {}
    written: list[str] = []
    missing: list[str] = []

    with zipfile.ZipFile(
        destination,
        "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=compression_level,
    ) as archive:
        archive.writestr(MANIFEST_FILENAME, manifest_bytes)

        for asset in manifest.assets:
            stored_name = locations.get(asset.id) or asset_filename(
                asset.id, asset.file_name
            )
            if not storage.exists(project_id, stored_name):
                logger.debug(
                    "Asset %s of project %s has no binary at %s; omitting it",
                    asset.id,
                    project_id,
                    stored_name,
                )
                missing.append(asset.id)
                continue

            archive.writestr(
                asset_entry_name(asset.id, asset.file_name),
                storage.read(project_id, stored_name),
            )
            written.append(asset.id)

    return ArchiveWriteResult(
        written_asset_ids=tuple(written),
        missing_asset_ids=tuple(missing),
    )


class ProjectArchive:
    """An opened archive: its validated manifest plus access to asset entries."""

    def __init__(self, manifest: ExportManifest, bundle: zipfile.ZipFile) -> None:
        self.manifest = manifest
        self._bundle = bundle
        self._entry_names = frozenset(bundle.namelist())

    def has_asset(self, asset: ManifestAsset) -> bool:
        return asset_entry_name(asset.id, asset.file_name) in self._entry_names

    def read_asset(self, asset: ManifestAsset) -> bytes | None:
        """Return the binary stored for ``asset`` or ``None`` when it is absent."""

        name = asset_entry_name(asset.id, asset.file_name)
        if name not in self._entry_names:
            return None
        try:
            return self._bundle.read(name)
        except _ENTRY_READ_ERRORS as exc:
            raise InvalidArchiveError(f"Failed to read archive entry '{name}'.") from exc

    def close(self) -> None:
        self._bundle.close()

    def __enter__(self) -> "ProjectArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_archive(data: bytes) -> ProjectArchive:
    """Open ``data`` as a project archive and validate its manifest.

    Raises:
        InvalidArchiveError: If the bytes are not a ZIP archive, lack
            ``project.json`` or hold a manifest that does not match the schema.
        UnsupportedManifestVersionError: If ``manifestVersion`` is missing or
            not one of the supported versions.
    """

    try:
        bundle = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
        raise InvalidArchiveError("Invalid project archive: not a ZIP file") from exc

    try:
        manifest = _load_manifest(bundle)
    except Exception:
        bundle.close()
        raise

    return ProjectArchive(manifest, bundle)


def _load_manifest(bundle: zipfile.ZipFile) -> ExportManifest:
    if MANIFEST_FILENAME not in bundle.namelist():
        raise InvalidArchiveError(
            f"Invalid project archive: missing {MANIFEST_FILENAME}"
        )

    try:
        raw = bundle.read(MANIFEST_FILENAME)
    except _ENTRY_READ_ERRORS as exc:
        raise InvalidArchiveError(
            f"Invalid project archive: {MANIFEST_FILENAME} could not be read"
        ) from exc

    try:
        payload: Any = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise InvalidArchiveError(
            f"Invalid project archive: {MANIFEST_FILENAME} is not valid JSON"
        ) from exc

    if not isinstance(payload, dict):
        raise InvalidArchiveError(
            f"Invalid project archive: {MANIFEST_FILENAME} must be a JSON object"
        )

    version = payload.get("manifestVersion")
    if (
        isinstance(version, bool)
        or not isinstance(version, int)
        or version not in SUPPORTED_MANIFEST_VERSIONS
    ):
        raise UnsupportedManifestVersionError(version)

    try:
        return ExportManifest.model_validate(payload)
    except ValidationError as exc:
        raise InvalidArchiveError(
            f"Invalid project archive: {exc.error_count()} manifest error(s)"
        ) from exc


__all__ = [
    "ArchiveWriteResult",
    "ProjectArchive",
    "open_archive",
    "serialise_manifest",
    "write_archive",
]
