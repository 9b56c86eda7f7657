from __future__ import annotations

from storyboard.naming import resolve_project_name


def test_unused_name_is_returned_unchanged() -> None:
    assert resolve_project_name("Demo", ["Other", "Demo 2"]) == "Demo"


def test_collision_appends_first_free_suffix() -> None:
    assert resolve_project_name("Demo", ["Demo"]) == "Demo (1)"
    assert resolve_project_name("Demo", ["Demo", "Demo (1)", "Demo (3)"]) == "Demo (2)"


def test_comparison_ignores_case() -> None:
    assert resolve_project_name("demo", ["DEMO", "Demo (1)"]) == "demo (2)"


def test_existing_names_can_be_any_iterable() -> None:
    existing = (name for name in ["Storyboard", "Storyboard (1)"])

    assert resolve_project_name("Storyboard", existing) == "Storyboard (2)"
