"""HTTP endpoints for lead import, validation, templates, and export."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .ingestion.exporters import media_type_for
from .ingestion.templates import TEMPLATE_FORMATS, build_template
from .models import JOB_COMPLETED, ImportOptions, UploadedFile, parse_field_mapping
from .orchestrator import ImportOrchestrator, ImportRequestError
from .store import InMemoryLeadStore

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/leads/import-export", tags=["import-export"])


class ExportRequest(BaseModel):
    """Request body for starting an export."""

    model_config = ConfigDict(populate_by_name=True)

    tenant_id: Optional[str] = Field(None, alias="tenantId")
    format: str = "csv"
    filters: Dict[str, Any] = Field(default_factory=dict)
    columns: Optional[List[str]] = Field(None, alias="fields")


def get_orchestrator(request: Request) -> ImportOrchestrator:
    return request.app.state.orchestrator


def _read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    if file is None:
        return None
    return UploadedFile(content=file.file.read(), filename=file.filename or "", media_type=file.content_type)


@router.post("/import", status_code=201)
def start_import(
    request: Request,
    file: Optional[UploadFile] = File(None),
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    update_existing: Optional[str] = Form(None, alias="updateExisting"),
    skip_duplicates: Optional[str] = Form(None, alias="skipDuplicates"),
    batch_size: Optional[str] = Form(None, alias="batchSize"),
    default_source: Optional[str] = Form(None, alias="defaultSource"),
    default_status: Optional[str] = Form(None, alias="defaultStatus"),
    default_priority: Optional[str] = Form(None, alias="defaultPriority"),
    default_tags: Optional[str] = Form(None, alias="defaultTags"),
    field_mapping: Optional[str] = Form(None, alias="fieldMapping"),
):
    orchestrator = get_orchestrator(request)
    try:
        options = ImportOptions.from_form(
            update_existing=update_existing,
            skip_duplicates=skip_duplicates,
            batch_size=batch_size,
            default_source=default_source,
            default_status=default_status,
            default_priority=default_priority,
            default_tags=default_tags,
            field_mapping=field_mapping,
            default_batch_size=orchestrator.settings.default_batch_size,
        )
        job = orchestrator.start_import(_read_upload(file), options, tenant_id, user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return job.as_dict()


@router.get("/import/{import_id}/progress")
def import_progress(import_id: str, request: Request):
    job = get_orchestrator(request).get_progress(import_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Import job not found")
    return job.as_dict()


@router.post("/validate")
def validate_upload(
    request: Request,
    file: Optional[UploadFile] = File(None),
    field_mapping: Optional[str] = Form(None, alias="fieldMapping"),
):
    try:
        mapping = parse_field_mapping(field_mapping)
        return get_orchestrator(request).validate_file(_read_upload(file), mapping)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/template")
def download_template(template_format: str = Query("csv", alias="format")):
    template_format = template_format.lower()
    if template_format not in TEMPLATE_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported template format: {template_format}")
    media_type, filename = TEMPLATE_FORMATS[template_format]
    return Response(
        content=build_template(template_format),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/export", status_code=201)
def start_export(payload: ExportRequest, request: Request):
    try:
        job = get_orchestrator(request).start_export(
            payload.tenant_id,
            payload.format,
            filters=payload.filters,
            fields=payload.columns,
        )
    except ImportRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return job.as_dict()


@router.get("/export/{export_id}/status")
def export_status(export_id: str, request: Request):
    job = get_orchestrator(request).get_export(export_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Export job not found")
    return job.as_dict()


@router.get("/export/{export_id}/download")
def download_export(export_id: str, request: Request):
    orchestrator = get_orchestrator(request)
    job = orchestrator.get_export(export_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Export job not found")
    content = orchestrator.get_export_file(export_id)
    if job.status != JOB_COMPLETED or content is None:
        raise HTTPException(status_code=409, detail=f"Export is {job.status}")
    return Response(
        content=content,
        media_type=media_type_for(job.format),
        headers={"Content-Disposition": f'attachment; filename="{job.filename}"'},
    )


def create_app(
    orchestrator: Optional[ImportOrchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Without an explicit orchestrator, leads are kept in an in-memory store
    and the orchestrator is shut down together with the application.
    """

    owns_orchestrator = orchestrator is None
    service = orchestrator or ImportOrchestrator(InMemoryLeadStore(), settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.start_sweeper()
        LOGGER.info("Lead import service started")
        try:
            yield
        finally:
            if owns_orchestrator:
                service.shutdown()
            else:
                service.imports.stop_sweeper()
                service.exports.stop_sweeper()

    app = FastAPI(title="Lead Import Service", lifespan=lifespan)
    app.state.orchestrator = service
    app.include_router(router)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "imports": len(service.imports), "exports": len(service.exports)}

    return app


__all__ = ["ExportRequest", "create_app", "router"]
