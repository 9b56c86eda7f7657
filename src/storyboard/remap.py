"""Fresh identifiers for every entity of an imported manifest."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

from .manifest import ExportManifest
from .stores import new_identifier


def _translate(table: Mapping[str, str], old_id: str | None) -> str | None:
    if old_id is None:
        return None
    return table.get(old_id)


@dataclass(frozen=True)
class IdentityRemap:
    """Old-id to new-id tables, one per entity kind, scoped to one import."""

    scenes: Mapping[str, str]
    assets: Mapping[str, str]
    chat_messages: Mapping[str, str]
    groups: Mapping[str, str]
    tags: Mapping[str, str]

    def scene(self, old_id: str | None) -> str | None:
        return _translate(self.scenes, old_id)

    def asset(self, old_id: str | None) -> str | None:
        return _translate(self.assets, old_id)

    def chat_message(self, old_id: str | None) -> str | None:
        return _translate(self.chat_messages, old_id)

    def group(self, old_id: str | None) -> str | None:
        return _translate(self.groups, old_id)

    def tag(self, old_id: str | None) -> str | None:
        return _translate(self.tags, old_id)

    def tag_list(self, old_ids: Iterable[str]) -> list[str]:
        """Translate ``old_ids``, dropping those absent from the manifest."""

        translated: list[str] = []
        for old_id in old_ids:
            new_id = self.tags.get(old_id)
            if new_id is not None and new_id not in translated:
                translated.append(new_id)
        return translated

    def without_assets(self, asset_ids: Iterable[str]) -> "IdentityRemap":
        """Return a copy in which ``asset_ids`` no longer resolve."""

        dropped = set(asset_ids)
        return IdentityRemap(
            scenes=self.scenes,
            assets={old: new for old, new in self.assets.items() if old not in dropped},
            chat_messages=self.chat_messages,
            groups=self.groups,
            tags=self.tags,
        )


def build_identity_remap(
    manifest: ExportManifest,
    *,
    id_factory: Callable[[], str] = new_identifier,
) -> IdentityRemap:
    """Draw one fresh id per scene, asset, chat message, group and tag.

    Ids come from a large random space, so collisions with rows already in
    the target store are treated as negligible and are not checked.
    """

    def table(old_ids: Iterable[str]) -> dict[str, str]:
        return {old_id: id_factory() for old_id in old_ids}

    return IdentityRemap(
        scenes=table(scene.id for scene in manifest.scenes),
        assets=table(asset.id for asset in manifest.assets),
        chat_messages=table(message.id for message in manifest.chat_messages),
        groups=table(group.id for group in manifest.groups),
        tags=table(tag.id for tag in manifest.tags),
    )


__all__ = ["IdentityRemap", "build_identity_remap"]
