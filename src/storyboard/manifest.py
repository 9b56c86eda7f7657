"""Versioned manifest describing a project's entity graph inside an archive."""

from __future__ import annotations

from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .storage import asset_filename

MANIFEST_VERSION = 1
SUPPORTED_MANIFEST_VERSIONS = frozenset({MANIFEST_VERSION})
MANIFEST_FILENAME = "project.json"
ASSET_DIRECTORY = "assets"

AspectRatio = Literal["16:9", "9:16", "1:1"]
AssetType = Literal["image", "video", "attachment"]
ChatRole = Literal["user", "model"]


class _ManifestModel(BaseModel):
    """Base model mapping snake_case attributes to the camelCase wire format."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ManifestProject(_ManifestModel):
    name: str = Field(..., description="Display name of the exported project.")
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Project name must be a non-empty string.")
        return value


class ManifestScene(_ManifestModel):
    id: str
    description: str
    aspect_ratio: AspectRatio
    order_index: int
    primary_image_asset_id: str | None = None
    primary_video_asset_id: str | None = None
    group_id: str | None = None
    tag_ids: list[str] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    @field_validator("tag_ids", mode="before")
    @classmethod
    def _default_tag_ids(cls, value: Any) -> Any:
        return [] if value is None else value


class ManifestAsset(_ManifestModel):
    id: str
    scene_id: str | None = None
    type: AssetType
    mime_type: str
    file_name: str
    size: int = Field(..., ge=0)
    checksum: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: str | None = None


class ManifestChatMessage(_ManifestModel):
    id: str
    scene_id: str | None = None
    role: ChatRole
    text: str
    image_asset_id: str | None = None
    created_at: str | None = None


class ManifestGroup(_ManifestModel):
    id: str
    name: str
    color: str | None = None
    order_index: int = 0
    created_at: str | None = None


class ManifestTag(_ManifestModel):
    id: str
    name: str
    color: str | None = None


class ExportManifest(_ManifestModel):
    """The complete, self-contained description of one project."""

    manifest_version: int = MANIFEST_VERSION
    project: ManifestProject
    scenes: list[ManifestScene] = Field(default_factory=list)
    chat_messages: list[ManifestChatMessage] = Field(default_factory=list)
    assets: list[ManifestAsset] = Field(default_factory=list)
    groups: list[ManifestGroup] = Field(default_factory=list)
    tags: list[ManifestTag] = Field(default_factory=list)
    settings: Any = None

    @model_validator(mode="after")
    def _ensure_unique_identifiers(self) -> "ExportManifest":
        collections: dict[str, Iterable[Any]] = {
            "scenes": self.scenes,
            "chatMessages": self.chat_messages,
            "assets": self.assets,
            "groups": self.groups,
            "tags": self.tags,
        }
        for label, entries in collections.items():
            seen: set[str] = set()
            for entry in entries:
                if entry.id in seen:
                    raise ValueError(f"Duplicate id '{entry.id}' in '{label}'.")
                seen.add(entry.id)
        return self

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-serialisable wire representation."""

        payload = self.model_dump(mode="json", by_alias=True)
        if self.settings is None:
            payload.pop("settings", None)
        return payload


def asset_entry_name(asset_id: str, file_name: str) -> str:
    """Return the archive path holding the binary for ``asset_id``."""

    return f"{ASSET_DIRECTORY}/{asset_filename(asset_id, file_name)}"


__all__ = [
    "ASSET_DIRECTORY",
    "AspectRatio",
    "AssetType",
    "ChatRole",
    "ExportManifest",
    "MANIFEST_FILENAME",
    "MANIFEST_VERSION",
    "ManifestAsset",
    "ManifestChatMessage",
    "ManifestGroup",
    "ManifestProject",
    "ManifestScene",
    "ManifestTag",
    "SUPPORTED_MANIFEST_VERSIONS",
    "asset_entry_name",
]
