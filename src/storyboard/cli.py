"""Command line entry point for exporting and importing project archives."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Sequence

from .archive import write_archive
from .database import connect_database
from .exporter import build_manifest, export_filename, stored_asset_names
from .importer import ProjectImporter
from .settings import ArchiveSettings
from .storage import create_asset_storage
from .stores import StoryboardStore


def main(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> int:
    """CLI entry point for project archive export and import."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = ArchiveSettings.from_env(environ)
        with connect_database(settings) as database:
            store = StoryboardStore(database)
            if args.command == "export":
                return _export(store, settings, args)
            return _import(store, settings, args)
    except (RuntimeError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _export(
    store: StoryboardStore, settings: ArchiveSettings, args: argparse.Namespace
) -> int:
    storage = create_asset_storage(settings)
    manifest = build_manifest(store, args.project_id)
    output = (
        Path(args.output)
        if args.output
        else Path(export_filename(manifest.project.name, datetime.now(timezone.utc)))
    )

    with output.open("wb") as handle:
        result = write_archive(
            handle,
            manifest,
            project_id=args.project_id,
            storage=storage,
            stored_names=stored_asset_names(store, args.project_id),
            compression_level=settings.compression_level,
        )

    print(
        f"Wrote '{manifest.project.name}' to {output} "
        f"({len(manifest.scenes)} scenes, {len(result.written_asset_ids)} asset files, "
        f"{len(result.missing_asset_ids)} missing)"
    )
    return 0


def _import(
    store: StoryboardStore, settings: ArchiveSettings, args: argparse.Namespace
) -> int:
    storage = create_asset_storage(settings)
    data = Path(args.archive).read_bytes()
    importer = ProjectImporter(
        store,
        storage,
        rollback_on_failure=args.rollback or settings.rollback_on_failure,
    )
    summary = importer.import_archive(data)

    print(
        f"Imported project {summary.project_id} as '{summary.project_name}' "
        f"({summary.scene_count} scenes, {summary.asset_count} assets, "
        f"{summary.chat_message_count} chat messages, "
        f"{len(summary.skipped_asset_ids)} assets skipped)"
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storyboard-archive",
        description="Export storyboard projects to ZIP archives and import them back.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    export_parser = subcommands.add_parser(
        "export", help="Write a project and its assets to an archive."
    )
    export_parser.add_argument("project_id", help="Identifier of the project to export.")
    export_parser.add_argument(
        "--output",
        help=(
            "Path of the archive to write. Defaults to the download filename "
            "in the current directory."
        ),
    )

    import_parser = subcommands.add_parser(
        "import", help="Create a new project from an archive."
    )
    import_parser.add_argument("archive", help="Path of the archive to import.")
    import_parser.add_argument(
        "--rollback",
        action="store_true",
        help="Remove the partially imported project if the import fails.",
    )
    return parser


if __name__ == "__main__":  # pragma: no cover - manual invocation
    sys.exit(main())
