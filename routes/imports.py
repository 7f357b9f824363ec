"""
Shipment import API routes.

Upload → mapping → preview → commit, plus retries of stored runs,
organization and agency lookups, and import templates.
"""

import asyncio
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, File, Form, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.import_result import CommitRequest, CommitResponse, PreviewRequest, PreviewResponse
from models.lookup import OrganizationList
from models.spreadsheet import MappingSuggestion, MappingSuggestionRequest, ParsedSpreadsheet
from models.template import (
    ImportTemplate,
    TemplateMatchRequest,
    TemplateMatchResult,
    TemplateSaveRequest,
    TemplateUpdateRequest,
)
from parsers.spreadsheet_parser import parse_spreadsheet
from services.entity_resolver import suggest_agencies
from services.import_service import get_import_service
from services.lookup_service import get_lookup_service
from services.mapping_suggestion_service import suggest_mapping
from services.template_service import get_template_service
from utils.deadline import CancellationToken

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/import", tags=["Import"])

DISCONNECT_POLL_SECONDS = 0.5


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


async def _cancel_on_disconnect(request: Request, token: CancellationToken) -> None:
    """Cancel the run if the client goes away before it finishes."""
    while not token.cancelled:
        if await request.is_disconnected():
            logger.warning("import_client_disconnected", path=request.url.path)
            token.cancel()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _run_cancellable(request: Request, fn, *args):
    """Run a blocking import call in the threadpool, cancelling on disconnect."""
    token = CancellationToken()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, token))
    try:
        return await run_in_threadpool(fn, *args, token)
    finally:
        watcher.cancel()


# ===================
# UPLOAD & MAPPING
# ===================

@router.post("/parse", response_model=ParsedSpreadsheet)
async def parse_file(
    file: UploadFile = File(...),
    sheet_name: Optional[str] = Form(None),
):
    """
    Decode an uploaded .xlsx/.xls/.csv file into headers and rows.

    Raises:
        422: Unsupported, empty, oversized file or unknown sheet
    """
    try:
        content = await file.read()
        return parse_spreadsheet(content, file.filename or "", sheet_name)

    except Exception as e:
        return handle_error(e)


@router.post("/mapping", response_model=MappingSuggestion)
async def suggest_column_mapping(data: MappingSuggestionRequest):
    """Suggest a target field for every header."""
    try:
        return suggest_mapping(data.headers, data.sample_rows)

    except Exception as e:
        return handle_error(e)


# ===================
# PREVIEW & COMMIT
# ===================

@router.post("/preview", response_model=PreviewResponse)
async def preview_import(data: PreviewRequest):
    """
    Dry run over the rows. Never writes.

    Returns one preview row per input row with errors and warnings, plus
    ok / with-warnings / with-errors counts.
    """
    try:
        service = get_import_service()
        return await run_in_threadpool(service.preview, data)

    except Exception as e:
        return handle_error(e)


@router.post("/commit", response_model=CommitResponse)
async def commit_import(data: CommitRequest, request: Request):
    """
    Create shipments for the rows.

    Raises:
        422: No rows, no mapping, too many rows or missing remitente_org_id
    """
    try:
        service = get_import_service()
        return await _run_cancellable(request, service.commit, data)

    except Exception as e:
        return handle_error(e)


@router.get("/runs/{run_id}", response_model=CommitResponse)
async def get_import_run(run_id: str):
    """
    Get the stored result of a commit or retry.

    Raises:
        404: Run expired or never existed
    """
    try:
        return get_import_service().get_run(run_id)

    except Exception as e:
        return handle_error(e)


@router.post("/runs/{run_id}/retry-failed", response_model=CommitResponse)
async def retry_failed_rows(run_id: str, request: Request):
    """Re-submit rows of a run that produced no shipment."""
    try:
        service = get_import_service()
        return await _run_cancellable(request, service.retry_failed, run_id)

    except Exception as e:
        return handle_error(e)


@router.post("/runs/{run_id}/retry-duplicates", response_model=CommitResponse)
async def retry_duplicate_rows(run_id: str, request: Request):
    """Re-submit rows skipped as duplicates, bypassing the duplicate check."""
    try:
        service = get_import_service()
        return await _run_cancellable(request, service.retry_duplicates, run_id)

    except Exception as e:
        return handle_error(e)


# ===================
# ORGANIZATIONS & AGENCIES
# ===================

@router.get("/orgs", response_model=OrganizationList)
async def list_organizations():
    """Active organizations to choose the sender, courier and agency from."""
    try:
        organizations = await run_in_threadpool(get_lookup_service().list_organizations)
        return OrganizationList(organizations=organizations)

    except Exception as e:
        return handle_error(e)


@router.get("/agencies/suggestions")
async def agency_suggestions(name: str = Query(..., min_length=1)):
    """
    Candidate agencies for an unmatched agency name.

    Advisory only; the reviewer picks one and sends it back in
    entity_resolutions.
    """
    try:
        lookup = await run_in_threadpool(get_lookup_service().load_index)
        return {
            "name": name,
            "suggestions": [asdict(a) for a in suggest_agencies(name, lookup)]
        }

    except Exception as e:
        return handle_error(e)


# ===================
# TEMPLATES
# ===================

@router.post("/templates/match", response_model=TemplateMatchResult)
async def match_template(data: TemplateMatchRequest):
    """Find a saved template for a header row."""
    try:
        return get_template_service().match(data.org_id, data.headers)

    except Exception as e:
        return handle_error(e)


@router.get("/templates", response_model=list[ImportTemplate])
async def list_templates(org_id: str = Query(..., min_length=1)):
    """List an organization's templates, most recent first."""
    try:
        return get_template_service().list_for_org(org_id)

    except Exception as e:
        return handle_error(e)


@router.post("/templates", response_model=ImportTemplate, status_code=201)
async def save_template(data: TemplateSaveRequest):
    """Create or replace the template for org + header layout + name."""
    try:
        return get_template_service().save(data)

    except Exception as e:
        return handle_error(e)


@router.patch("/templates/{template_id}", response_model=ImportTemplate)
async def update_template(template_id: str, data: TemplateUpdateRequest):
    """
    Update a template. Only provided fields are updated.

    Raises:
        404: Template not found
        409: New headers collide with another template
    """
    try:
        return get_template_service().update(template_id, data)

    except Exception as e:
        return handle_error(e)


@router.delete("/templates/{template_id}")
async def delete_template(template_id: str):
    """Delete a template."""
    try:
        get_template_service().delete(template_id)
        return {"success": True, "id": template_id}

    except Exception as e:
        return handle_error(e)
