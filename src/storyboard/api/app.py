"""FastAPI application exposing project archive export and import."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.datastructures import UploadFile

from ..database import connect_database
from ..errors import (
    EntityCreationError,
    InvalidArchiveError,
    ProjectNotFoundError,
)
from ..exporter import export_project
from ..importer import ImportSummary, ProjectImporter
from ..settings import ArchiveSettings
from ..storage import AssetStorage, create_asset_storage
from ..stores import StoryboardStore

logger = logging.getLogger(__name__)

ARCHIVE_CONTENT_TYPES = frozenset(
    {"application/zip", "application/x-zip-compressed", "application/octet-stream"}
)
FORM_CONTENT_TYPE = "multipart/form-data"
UPLOAD_FIELD = "file"


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportedProjectResource(_ApiModel):
    id: str = Field(..., description="Identifier of the newly created project.")
    name: str = Field(..., description="Name after resolving collisions.")


class ImportCountsResource(_ApiModel):
    """Entity counts reported back after an import."""

    scenes: int
    assets: int = Field(
        ..., description="Assets listed in the archive, including skipped ones."
    )
    chat_messages: int
    skipped_assets: int = Field(
        0, description="Assets whose binary was missing from the archive."
    )


class ProjectImportResponse(_ApiModel):
    success: bool = True
    project: ImportedProjectResource
    summary: ImportCountsResource

    @classmethod
    def from_summary(cls, summary: ImportSummary) -> "ProjectImportResponse":
        return cls(
            project=ImportedProjectResource(
                id=summary.project_id, name=summary.project_name
            ),
            summary=ImportCountsResource(
                scenes=summary.scene_count,
                assets=summary.asset_count,
                chat_messages=summary.chat_message_count,
                skipped_assets=len(summary.skipped_asset_ids),
            ),
        )


def _media_type(header: str | None) -> str:
    if not header:
        return ""
    return header.split(";", 1)[0].strip().lower()


def _archive_too_large(settings: ArchiveSettings) -> HTTPException:
    return HTTPException(
        status_code=413,
        detail=f"Archive exceeds the maximum size of {settings.max_archive_size_mb}MB.",
    )


def _invalid_file_type() -> HTTPException:
    return HTTPException(
        status_code=400,
        detail="Invalid file type. Please upload a ZIP archive.",
    )


async def _read_form_upload(request: Request) -> bytes:
    """Return the archive sent as the ``file`` field of a multipart form."""

    form = await request.form()
    try:
        upload = form.get(UPLOAD_FIELD)
        if not isinstance(upload, UploadFile):
            raise HTTPException(status_code=400, detail="No archive uploaded.")
        if _media_type(upload.content_type) not in ARCHIVE_CONTENT_TYPES:
            raise _invalid_file_type()
        return await upload.read()
    finally:
        await form.close()


def create_app(
    settings: ArchiveSettings | None = None,
    *,
    store: StoryboardStore | None = None,
    storage: AssetStorage | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the project archive endpoints."""

    resolved_settings = settings or ArchiveSettings.from_env()

    project_store = store
    if project_store is None:
        project_store = StoryboardStore(connect_database(resolved_settings))

    asset_storage = storage
    if asset_storage is None:
        asset_storage = create_asset_storage(resolved_settings)

    importer = ProjectImporter(
        project_store,
        asset_storage,
        rollback_on_failure=resolved_settings.rollback_on_failure,
    )
    max_archive_bytes = resolved_settings.max_archive_size_bytes

    tags_metadata = [
        {
            "name": "Project Archives",
            "description": (
                "Download a project with its assets as a ZIP archive and "
                "import such archives as new projects."
            ),
        },
    ]

    app = FastAPI(
        title="Storyboard Archive API",
        version="0.1.0",
        description=(
            "Export storyboard projects as portable archives and import them "
            "back as independent copies."
        ),
        openapi_tags=tags_metadata,
    )

    @app.get(
        "/api/projects/{project_id}/export",
        tags=["Project Archives"],
        response_class=Response,
    )
    def export_project_archive(project_id: str) -> Response:
        try:
            archive = export_project(
                project_store,
                asset_storage,
                project_id,
                compression_level=resolved_settings.compression_level,
            )
        except ProjectNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except RuntimeError as exc:
            logger.exception("Export of project %s failed", project_id)
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        headers = {
            "content-disposition": f'attachment; filename="{archive.filename}"',
            "x-storyboard-project-id": archive.project_id,
            "x-storyboard-missing-assets": str(len(archive.missing_asset_ids)),
        }
        return Response(
            content=archive.content,
            media_type=archive.content_type,
            headers=headers,
        )

    @app.post(
        "/api/projects/import",
        status_code=201,
        response_model=ProjectImportResponse,
        tags=["Project Archives"],
    )
    async def import_project_archive(request: Request) -> ProjectImportResponse:
        media_type = _media_type(request.headers.get("content-type"))
        if media_type != FORM_CONTENT_TYPE and media_type not in ARCHIVE_CONTENT_TYPES:
            raise _invalid_file_type()

        declared_length = request.headers.get("content-length")
        if declared_length and declared_length.isdigit():
            if int(declared_length) > max_archive_bytes:
                raise _archive_too_large(resolved_settings)

        if media_type == FORM_CONTENT_TYPE:
            data = await _read_form_upload(request)
        else:
            data = await request.body()
        if not data:
            raise HTTPException(status_code=400, detail="No archive uploaded.")
        if len(data) > max_archive_bytes:
            raise _archive_too_large(resolved_settings)

        try:
            summary = await run_in_threadpool(importer.import_archive, data)
        except InvalidArchiveError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except EntityCreationError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        return ProjectImportResponse.from_summary(summary)

    return app


__all__ = [
    "ImportCountsResource",
    "ImportedProjectResource",
    "ProjectImportResponse",
    "create_app",
]
