"""Project name disambiguation for imports."""

from __future__ import annotations

from typing import Iterable


def resolve_project_name(name: str, existing_names: Iterable[str]) -> str:
    """Return ``name`` or the first free ``"name (n)"`` variant, ``n`` from 1.

    Names are compared case-insensitively. ``existing_names`` is read once,
    so two imports running at the same time may settle on the same name.
    """

    taken = {existing.casefold() for existing in existing_names}
    if name.casefold() not in taken:
        return name

    counter = 1
    while True:
        candidate = f"{name} ({counter})"
        if candidate.casefold() not in taken:
            return candidate
        counter += 1


__all__ = ["resolve_project_name"]
