"""Test configuration for the storyboard archive project."""

from __future__ import annotations

import io
import struct
import sys
import zipfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from collections.abc import Callable, Iterator
from dataclasses import dataclass

import pytest

from storyboard.database import SqliteDatabase
from storyboard.storage import LocalAssetStorage, asset_filename
from storyboard.stores import StoryboardStore, new_identifier

HERO_IMAGE = b"\x89PNG\r\n\x1a\nhero-frame"


@dataclass(frozen=True)
class DemoProject:
    """Identifiers of the entities created by :func:`make_demo_project`."""

    project_id: str
    scene_ids: tuple[str, str]
    asset_id: str
    group_id: str
    tag_id: str
    message_id: str


@pytest.fixture()
def database() -> Iterator[SqliteDatabase]:
    db = SqliteDatabase(":memory:")
    db.initialise_schema()
    yield db
    db.close()


@pytest.fixture()
def store(database: SqliteDatabase) -> StoryboardStore:
    return StoryboardStore(database)


@pytest.fixture()
def storage(tmp_path: Path) -> LocalAssetStorage:
    return LocalAssetStorage(tmp_path / "data")


@pytest.fixture()
def make_demo_project(
    store: StoryboardStore, storage: LocalAssetStorage
) -> Callable[..., DemoProject]:
    """Factory seeding a two-scene project with an asset, group, tag and chat."""

    def _factory(name: str = "Demo") -> DemoProject:
        project = store.create_project(name, "Storyboard used in tests")
        storage.ensure_project(project.identifier)

        first = store.create_scene(
            project.identifier,
            description="Hero enters the castle",
            aspect_ratio="16:9",
            order_index=0,
        )
        second = store.create_scene(
            project.identifier,
            description="Empty throne room",
            aspect_ratio="1:1",
            order_index=1,
        )

        asset_id = new_identifier()
        stored_path = storage.write(
            project.identifier, asset_filename(asset_id, "hero.png"), HERO_IMAGE
        )
        store.create_asset(
            project.identifier,
            asset_type="image",
            mime_type="image/png",
            file_name="hero.png",
            file_path=stored_path,
            size=len(HERO_IMAGE),
            checksum="abc123",
            metadata={"prompt": "a hero at the gate"},
            scene_id=first.identifier,
            identifier=asset_id,
        )
        store.set_scene_primary_assets(
            first.identifier, image_asset_id=asset_id, video_asset_id=None
        )

        group = store.create_group(project.identifier, name="Intro", color="#ff0000")
        store.add_scene_to_group(group.identifier, first.identifier)
        tag = store.create_tag(project.identifier, name="hero", color="#00ff00")
        store.assign_tags_to_scene(first.identifier, [tag.identifier])

        message = store.append_chat_message(
            project.identifier,
            role="user",
            text="Draw the hero at the castle gate",
            scene_id=first.identifier,
            image_asset_id=asset_id,
        )
        store.upsert_settings(project.identifier, {"theme": "dark"})

        return DemoProject(
            project_id=project.identifier,
            scene_ids=(first.identifier, second.identifier),
            asset_id=asset_id,
            group_id=group.identifier,
            tag_id=tag.identifier,
            message_id=message.identifier,
        )

    return _factory


@pytest.fixture()
def demo_project(make_demo_project: Callable[..., DemoProject]) -> DemoProject:
    return make_demo_project()


@pytest.fixture()
def corrupt_entry() -> Callable[[bytes, str], bytes]:
    """Return a helper that flips every compressed byte of one archive entry."""

    def _corrupt(data: bytes, name: str) -> bytes:
        with zipfile.ZipFile(io.BytesIO(data)) as bundle:
            info = bundle.getinfo(name)
        raw = bytearray(data)
        # Local file header: 30 fixed bytes, then the name and extra field.
        name_length, extra_length = struct.unpack_from(
            "<HH", raw, info.header_offset + 26
        )
        start = info.header_offset + 30 + name_length + extra_length
        for index in range(start, start + info.compress_size):
            raw[index] ^= 0xFF
        return bytes(raw)

    return _corrupt
