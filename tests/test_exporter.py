from __future__ import annotations

import io
import json
import zipfile
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest

from storyboard.errors import ProjectNotFoundError
from storyboard.exporter import (
    build_manifest,
    export_filename,
    export_project,
    stored_asset_names,
)
from storyboard.storage import LocalAssetStorage, asset_filename
from storyboard.stores import StoryboardStore

if TYPE_CHECKING:
    from conftest import DemoProject


def test_build_manifest_captures_the_project_graph(
    store: StoryboardStore, demo_project: DemoProject
) -> None:
    manifest = build_manifest(store, demo_project.project_id)
    first_id, second_id = demo_project.scene_ids

    assert manifest.manifest_version == 1
    assert manifest.project.name == "Demo"
    assert manifest.project.description == "Storyboard used in tests"
    assert [scene.id for scene in manifest.scenes] == [first_id, second_id]

    first, second = manifest.scenes
    assert first.primary_image_asset_id == demo_project.asset_id
    assert first.primary_video_asset_id is None
    assert first.group_id == demo_project.group_id
    assert first.tag_ids == [demo_project.tag_id]
    assert second.group_id is None
    assert second.tag_ids == []

    (asset,) = manifest.assets
    assert asset.id == demo_project.asset_id
    assert asset.scene_id == first_id
    assert asset.metadata == {"prompt": "a hero at the gate"}

    (message,) = manifest.chat_messages
    assert message.scene_id == first_id
    assert message.image_asset_id == demo_project.asset_id

    assert [(group.name, group.color) for group in manifest.groups] == [("Intro", "#ff0000")]
    assert [(tag.name, tag.color) for tag in manifest.tags] == [("hero", "#00ff00")]
    assert manifest.settings == {"theme": "dark"}


def test_build_manifest_for_unknown_project_raises(store: StoryboardStore) -> None:
    with pytest.raises(ProjectNotFoundError, match="missing-project") as excinfo:
        build_manifest(store, "missing-project")

    assert excinfo.value.project_id == "missing-project"


def test_build_manifest_without_settings_has_none(store: StoryboardStore) -> None:
    project = store.create_project("Bare")

    manifest = build_manifest(store, project.identifier)

    assert manifest.settings is None
    assert manifest.scenes == []
    assert "settings" not in manifest.to_payload()


def test_export_filename_sanitises_project_name() -> None:
    generated_at = datetime(2024, 5, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

    assert export_filename("My Storyboard: Act II!", generated_at) == (
        "my_storyboard__act_ii__2024-05-02.zip"
    )


def test_export_project_packages_manifest_and_binaries(
    store: StoryboardStore, storage: LocalAssetStorage, demo_project: DemoProject
) -> None:
    now = datetime(2024, 7, 1, 10, 30, tzinfo=timezone.utc)

    archive = export_project(store, storage, demo_project.project_id, now=now)

    assert archive.filename == "demo_2024-07-01.zip"
    assert archive.content_type == "application/zip"
    assert archive.size == len(archive.content)
    assert archive.generated_at == now
    assert archive.written_asset_ids == (demo_project.asset_id,)
    assert archive.missing_asset_ids == ()

    with zipfile.ZipFile(io.BytesIO(archive.content)) as bundle:
        entry = f"assets/{demo_project.asset_id}.png"
        assert sorted(bundle.namelist()) == [entry, "project.json"]
        payload = json.loads(bundle.read("project.json"))

    assert payload["project"]["name"] == "Demo"
    assert payload["settings"] == {"theme": "dark"}


def test_export_project_omits_missing_binaries(
    store: StoryboardStore, storage: LocalAssetStorage, demo_project: DemoProject
) -> None:
    storage.delete(
        demo_project.project_id, asset_filename(demo_project.asset_id, "hero.png")
    )

    archive = export_project(store, storage, demo_project.project_id)

    assert archive.missing_asset_ids == (demo_project.asset_id,)
    assert [asset.id for asset in archive.manifest.assets] == [demo_project.asset_id]
    with zipfile.ZipFile(io.BytesIO(archive.content)) as bundle:
        assert bundle.namelist() == ["project.json"]


def test_export_project_unknown_id_writes_nothing(
    store: StoryboardStore, storage: LocalAssetStorage
) -> None:
    with pytest.raises(ProjectNotFoundError):
        export_project(store, storage, "nope")


def test_export_project_reads_binaries_from_recorded_file_path(
    store: StoryboardStore, storage: LocalAssetStorage
) -> None:
    project = store.create_project("Sanitised")
    stored_path = storage.write(project.identifier, "hero-sanitised.png", b"\x89PNG")
    asset = store.create_asset(
        project.identifier,
        asset_type="image",
        mime_type="image/png",
        file_name="hero.png",
        file_path=stored_path,
        size=4,
    )

    archive = export_project(store, storage, project.identifier)

    assert archive.written_asset_ids == (asset.identifier,)
    assert archive.missing_asset_ids == ()
    with zipfile.ZipFile(io.BytesIO(archive.content)) as bundle:
        assert bundle.read(f"assets/{asset.identifier}.png") == b"\x89PNG"


def test_stored_asset_names_skips_paths_without_a_file_name(
    store: StoryboardStore,
) -> None:
    project = store.create_project("Paths")
    keyed = store.create_asset(
        project.identifier,
        asset_type="video",
        mime_type="video/mp4",
        file_name="clip.mp4",
        file_path="boards/assets/p1/clip-final.mp4",
        size=9,
    )
    store.create_asset(
        project.identifier,
        asset_type="image",
        mime_type="image/png",
        file_name="blank.png",
        file_path="",
        size=0,
    )

    assert stored_asset_names(store, project.identifier) == {
        keyed.identifier: "clip-final.mp4"
    }
