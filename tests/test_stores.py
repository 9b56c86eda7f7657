from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from storyboard.stores import StoryboardStore

if TYPE_CHECKING:
    from conftest import DemoProject


def test_create_project_trims_name_and_uses_given_identifier(
    store: StoryboardStore,
) -> None:
    project = store.create_project("  Demo  ", None, identifier="fixed-id")

    assert project.identifier == "fixed-id"
    assert project.name == "Demo"
    assert project.created_at.endswith("Z")
    assert store.get_project("fixed-id") == project
    assert store.list_project_names() == ["Demo"]


@pytest.mark.parametrize("name", ["", "   "])
def test_create_project_rejects_blank_names(store: StoryboardStore, name: str) -> None:
    with pytest.raises(ValueError):
        store.create_project(name)


def test_scenes_are_listed_by_order_index(store: StoryboardStore) -> None:
    project = store.create_project("Board")
    store.create_scene(project.identifier, description="late", aspect_ratio="16:9", order_index=10)
    store.create_scene(project.identifier, description="early", aspect_ratio="9:16", order_index=2)
    appended = store.create_scene(project.identifier, description="next", aspect_ratio="1:1")

    assert appended.order_index == 11
    assert [scene.description for scene in store.list_scenes(project.identifier)] == [
        "early",
        "late",
        "next",
    ]


def test_timestamps_follow_insertion_order(store: StoryboardStore) -> None:
    project = store.create_project("Board")
    for index in range(20):
        store.append_chat_message(project.identifier, role="user", text=f"message {index}")

    messages = store.list_chat_messages(project.identifier)

    assert [message.text for message in messages] == [f"message {i}" for i in range(20)]
    created = [message.created_at for message in messages]
    assert created == sorted(created)
    assert len(set(created)) == len(created)


def test_scene_can_only_belong_to_one_group(store: StoryboardStore) -> None:
    project = store.create_project("Board")
    scene = store.create_scene(project.identifier, description="s", aspect_ratio="16:9")
    first = store.create_group(project.identifier, name="Act 1")
    second = store.create_group(project.identifier, name="Act 2", color="#123456")

    store.add_scene_to_group(first.identifier, scene.identifier)
    store.add_scene_to_group(second.identifier, scene.identifier)

    assert second.order_index == first.order_index + 1
    assert store.scene_group_ids(project.identifier) == {scene.identifier: second.identifier}


def test_assign_tags_is_idempotent(store: StoryboardStore) -> None:
    project = store.create_project("Board")
    scene = store.create_scene(project.identifier, description="s", aspect_ratio="16:9")
    villain = store.create_tag(project.identifier, name="villain")
    hero = store.create_tag(project.identifier, name="hero", color="#00ff00")

    store.assign_tags_to_scene(scene.identifier, [villain.identifier, hero.identifier])
    store.assign_tags_to_scene(scene.identifier, [hero.identifier])

    assert store.scene_tag_ids(project.identifier) == {
        scene.identifier: [hero.identifier, villain.identifier]
    }
    assert [tag.name for tag in store.list_tags(project.identifier)] == ["hero", "villain"]


def test_asset_metadata_round_trips(store: StoryboardStore) -> None:
    project = store.create_project("Board")
    with_metadata = store.create_asset(
        project.identifier,
        asset_type="image",
        mime_type="image/png",
        file_name="a.png",
        file_path="/tmp/a.png",
        size=3,
        metadata={"seed": 42, "tags": ["x"]},
    )
    empty_metadata = store.create_asset(
        project.identifier,
        asset_type="attachment",
        mime_type="text/plain",
        file_name="b.txt",
        file_path="/tmp/b.txt",
        size=1,
        metadata={},
    )

    assert with_metadata.metadata == {"seed": 42, "tags": ["x"]}
    assert empty_metadata.metadata == {}
    assert [asset.identifier for asset in store.list_assets(project.identifier)] == [
        with_metadata.identifier,
        empty_metadata.identifier,
    ]


def test_upsert_settings_replaces_existing_blob(store: StoryboardStore) -> None:
    project = store.create_project("Board")

    assert store.get_settings(project.identifier) is None
    store.upsert_settings(project.identifier, {"theme": "dark"})
    record = store.upsert_settings(project.identifier, {"theme": "light", "grid": True})

    assert record.data == {"theme": "light", "grid": True}
    assert store.get_settings(project.identifier) == record


def test_delete_project_removes_every_row(
    store: StoryboardStore, demo_project: DemoProject
) -> None:
    other = store.create_project("Keep me")

    assert store.delete_project(demo_project.project_id) is True
    assert store.delete_project(demo_project.project_id) is False

    project_id = demo_project.project_id
    assert store.get_project(project_id) is None
    assert store.list_scenes(project_id) == []
    assert store.list_assets(project_id) == []
    assert store.list_chat_messages(project_id) == []
    assert store.list_groups(project_id) == []
    assert store.list_tags(project_id) == []
    assert store.get_settings(project_id) is None
    for table in ("scene_group_members", "scene_tag_assignments"):
        assert store.database.query(f"SELECT * FROM {table}").rows == []
    assert store.list_project_names() == [other.name]
