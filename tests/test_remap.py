from __future__ import annotations

import itertools

from storyboard.manifest import ExportManifest
from storyboard.remap import build_identity_remap


def _manifest() -> ExportManifest:
    return ExportManifest.model_validate(
        {
            "manifestVersion": 1,
            "project": {"name": "Demo"},
            "scenes": [
                {"id": "s1", "description": "a", "aspectRatio": "16:9", "orderIndex": 0},
                {"id": "s2", "description": "b", "aspectRatio": "16:9", "orderIndex": 1},
            ],
            "assets": [
                {
                    "id": "a1",
                    "type": "image",
                    "mimeType": "image/png",
                    "fileName": "a.png",
                    "size": 1,
                }
            ],
            "chatMessages": [{"id": "m1", "role": "user", "text": "hi"}],
            "groups": [{"id": "g1", "name": "Intro"}],
            "tags": [{"id": "t1", "name": "hero"}, {"id": "t2", "name": "night"}],
        }
    )


def test_build_identity_remap_draws_one_id_per_entity() -> None:
    counter = itertools.count(1)

    remap = build_identity_remap(_manifest(), id_factory=lambda: f"new-{next(counter)}")

    assert remap.scenes == {"s1": "new-1", "s2": "new-2"}
    assert remap.assets == {"a1": "new-3"}
    assert remap.chat_messages == {"m1": "new-4"}
    assert remap.groups == {"g1": "new-5"}
    assert remap.tags == {"t1": "new-6", "t2": "new-7"}


def test_build_identity_remap_uses_fresh_random_ids_by_default() -> None:
    manifest = _manifest()

    first = build_identity_remap(manifest)
    second = build_identity_remap(manifest)

    new_ids = [
        *first.scenes.values(),
        *first.assets.values(),
        *first.chat_messages.values(),
        *first.groups.values(),
        *first.tags.values(),
    ]
    assert len(set(new_ids)) == len(new_ids) == 8
    assert not set(new_ids) & {"s1", "s2", "a1", "m1", "g1", "t1", "t2"}
    assert set(first.scenes.values()).isdisjoint(second.scenes.values())


def test_lookups_resolve_unknown_and_missing_references_to_none() -> None:
    remap = build_identity_remap(_manifest())

    assert remap.scene(None) is None
    assert remap.scene("s-unknown") is None
    assert remap.asset("a1") == remap.assets["a1"]
    assert remap.group("g1") == remap.groups["g1"]
    assert remap.tag_list(["t2", "ghost", "t2", "t1"]) == [
        remap.tags["t2"],
        remap.tags["t1"],
    ]


def test_without_assets_drops_only_the_given_assets() -> None:
    remap = build_identity_remap(_manifest())

    trimmed = remap.without_assets(["a1"])

    assert trimmed.asset("a1") is None
    assert remap.asset("a1") is not None
    assert trimmed.scenes == remap.scenes
