"""Binary stores holding asset payloads, addressed by project and asset file name."""

from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol, cast

from .errors import StorageError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .settings import ArchiveSettings


def asset_filename(asset_id: str, file_name: str) -> str:
    """Return the storage name for an asset: its id plus the original extension."""

    return f"{asset_id}{PurePosixPath(file_name).suffix}"


def stored_filename(file_path: str | None) -> str | None:
    """Return the name a stored path or key has inside its project namespace.

    Both backends keep a project's binaries flat under one directory or key
    prefix, so the final path component is what :meth:`AssetStorage.read`
    expects. Returns ``None`` when ``file_path`` has no usable final component.
    """

    if not file_path:
        return None
    name = PurePosixPath(file_path.replace("\\", "/")).name.strip()
    if not name or name in {".", ".."}:
        return None
    return name


def _validate_segment(value: str, *, label: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{label} must be a string")
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{label} must be a non-empty string")
    if stripped in {".", ".."} or "/" in stripped or "\\" in stripped:
        raise ValueError(f"{label} must not contain path separators: {value!r}")
    return stripped


class AssetStorage(Protocol):
    """Protocol for persisting asset binaries per project."""

    def ensure_project(self, project_id: str) -> None:
        """Make sure a storage namespace exists for ``project_id``."""

    def exists(self, project_id: str, filename: str) -> bool:
        """Return ``True`` when the payload is present."""

    def read(self, project_id: str, filename: str) -> bytes:
        """Return the payload, raising :class:`StorageError` when unreadable."""

    def write(self, project_id: str, filename: str, content: bytes) -> str:
        """Persist ``content`` and return the stored path or key."""

    def delete(self, project_id: str, filename: str) -> None:
        """Remove the payload if it exists."""

    def delete_project(self, project_id: str) -> None:
        """Remove every payload stored for ``project_id``."""


class LocalAssetStorage:
    """Keep asset binaries on disk under ``<root>/assets/<project_id>/``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def project_dir(self, project_id: str) -> Path:
        return self.root / "assets" / _validate_segment(project_id, label="project_id")

    def ensure_project(self, project_id: str) -> None:
        directory = self.project_dir(project_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                f"Failed to prepare asset directory for project '{project_id}'."
            ) from exc

    def exists(self, project_id: str, filename: str) -> bool:
        return self._path_for(project_id, filename).is_file()

    def read(self, project_id: str, filename: str) -> bytes:
        path = self._path_for(project_id, filename)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read asset '{path}'.") from exc

    def write(self, project_id: str, filename: str, content: bytes) -> str:
        path = self._path_for(project_id, filename)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise StorageError(f"Failed to write asset '{path}'.") from exc
        return str(path)

    def delete(self, project_id: str, filename: str) -> None:
        path = self._path_for(project_id, filename)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete asset '{path}'.") from exc

    def delete_project(self, project_id: str) -> None:
        directory = self.project_dir(project_id)
        if not directory.exists():
            return
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            raise StorageError(
                f"Failed to delete asset directory for project '{project_id}'."
            ) from exc

    def _path_for(self, project_id: str, filename: str) -> Path:
        return self.project_dir(project_id) / _validate_segment(
            filename, label="filename"
        )


class _S3ClientProtocol(Protocol):
    def put_object(self, **kwargs: Any) -> Any:
        """Persist an object to S3."""

    def get_object(self, **kwargs: Any) -> Any:
        """Fetch an object from S3."""

    def delete_object(self, **kwargs: Any) -> Any:
        """Remove an object from S3."""

    def list_objects_v2(self, **kwargs: Any) -> Any:
        """List objects below a prefix."""


class S3AssetStorage:
    """Keep asset binaries in an Amazon S3 compatible bucket."""

    def __init__(
        self,
        *,
        bucket: str,
        prefix: str | None = None,
        client: _S3ClientProtocol | None = None,
        region_name: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        self._bucket = bucket
        normalised_prefix = (prefix or "").strip()
        self._prefix = normalised_prefix.strip("/")
        self._client: _S3ClientProtocol

        if client is not None:
            self._client = client
            return

        try:
            import boto3  # type: ignore[import-not-found]
        except ImportError as exc:  # pragma: no cover - depends on optional extra
            raise RuntimeError(
                "boto3 is required to use S3AssetStorage but is not installed."
            ) from exc

        self._client = cast(
            _S3ClientProtocol,
            boto3.client("s3", region_name=region_name, endpoint_url=endpoint_url),
        )

    def ensure_project(self, project_id: str) -> None:
        # Object stores have no directories to create.
        _validate_segment(project_id, label="project_id")

    def exists(self, project_id: str, filename: str) -> bool:
        key = self._key_for(project_id, filename)
        response = self._call(
            "list_objects_v2", Bucket=self._bucket, Prefix=key, MaxKeys=1
        )
        return any(entry.get("Key") == key for entry in response.get("Contents", []))

    def read(self, project_id: str, filename: str) -> bytes:
        key = self._key_for(project_id, filename)
        response = self._call("get_object", Bucket=self._bucket, Key=key)
        try:
            return response["Body"].read()
        except (KeyError, OSError) as exc:
            raise StorageError(f"Failed to read asset '{key}'.") from exc

    def write(self, project_id: str, filename: str, content: bytes) -> str:
        key = self._key_for(project_id, filename)
        self._call("put_object", Bucket=self._bucket, Key=key, Body=content)
        return key

    def delete(self, project_id: str, filename: str) -> None:
        key = self._key_for(project_id, filename)
        self._call("delete_object", Bucket=self._bucket, Key=key)

    def delete_project(self, project_id: str) -> None:
        prefix = self._project_prefix(project_id) + "/"
        continuation: str | None = None
        while True:
            kwargs: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix}
            if continuation is not None:
                kwargs["ContinuationToken"] = continuation
            response = self._call("list_objects_v2", **kwargs)
            for entry in response.get("Contents", []):
                self._call("delete_object", Bucket=self._bucket, Key=entry["Key"])
            if not response.get("IsTruncated"):
                return
            continuation = response.get("NextContinuationToken")

    def _project_prefix(self, project_id: str) -> str:
        segment = _validate_segment(project_id, label="project_id")
        base = f"assets/{segment}"
        return base if not self._prefix else f"{self._prefix}/{base}"

    def _key_for(self, project_id: str, filename: str) -> str:
        name = _validate_segment(filename, label="filename")
        return f"{self._project_prefix(project_id)}/{name}"

    def _call(self, method: str, **kwargs: Any) -> Any:
        try:
            return getattr(self._client, method)(**kwargs)
        except Exception as exc:  # botocore raises ClientError subclasses
            raise StorageError(
                f"S3 {method} failed for bucket '{self._bucket}'."
            ) from exc


def create_asset_storage(settings: "ArchiveSettings") -> AssetStorage:
    """Return the binary store selected by ``settings``."""

    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("An S3 bucket must be configured for the s3 backend.")
        return S3AssetStorage(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )
    return LocalAssetStorage(settings.data_dir)


__all__ = [
    "AssetStorage",
    "LocalAssetStorage",
    "S3AssetStorage",
    "asset_filename",
    "create_asset_storage",
    "stored_filename",
]
