# buyer_leads/routes/leads.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import BusinessRuleError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import get_session
from buyer_leads.models.lead import Lead
from buyer_leads.schemas.lead import (
    HistoryEntryResponse,
    LeadDetailResponse,
    LeadIn,
    LeadListResponse,
    LeadResponse,
    LeadUpdate,
    MessageResponse,
)
from buyer_leads.schemas.lead_import import ImportResponse
from buyer_leads.services.auth import Caller, get_caller
from buyer_leads.services.lead_import import LeadImporter
from buyer_leads.services.lead_query import LeadQuery
from buyer_leads.services.lead_writer import LeadWriter
from buyer_leads.services.rate_limit import RateLimiter, create_rate_limiter
from buyer_leads.services.store import SqlStorage, Storage

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])


# Dependencies
def get_storage(session: AsyncSession = Depends(get_session)) -> Storage:
    return SqlStorage(session)


def get_rate_limiter() -> RateLimiter:
    return create_rate_limiter()


def get_lead_writer(
    storage: Storage = Depends(get_storage),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> LeadWriter:
    return LeadWriter(storage, rate_limiter=rate_limiter)


def get_lead_importer(storage: Storage = Depends(get_storage)) -> LeadImporter:
    return LeadImporter(storage)


def get_lead_query(storage: Storage = Depends(get_storage)) -> LeadQuery:
    return LeadQuery(storage)


def _lead_response(lead: Lead) -> LeadResponse:
    return LeadResponse.model_validate(lead.to_wire())


# Routes
@router.get("", response_model=LeadListResponse)
async def list_leads(
    request: Request,
    caller: Optional[Caller] = Depends(get_caller),
    query: LeadQuery = Depends(get_lead_query),
):
    """List leads with search, filters, sorting and pagination."""
    page = await query.list_page(caller, request.query_params)
    return LeadListResponse(
        items=[_lead_response(lead) for lead in page.items],
        current_page=page.current_page,
        total_pages=page.total_pages,
        total_count=page.total_count,
    )


@router.get("/export")
async def export_leads(
    request: Request,
    caller: Optional[Caller] = Depends(get_caller),
    query: LeadQuery = Depends(get_lead_query),
):
    """Export every lead matching the list filters as CSV."""
    content = await query.export_csv(caller, request.query_params)
    filename = f"buyers-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=ImportResponse)
async def import_leads(
    file: Optional[UploadFile] = File(default=None),
    caller: Optional[Caller] = Depends(get_caller),
    importer: LeadImporter = Depends(get_lead_importer),
):
    """Import up to the configured number of rows from a CSV upload."""
    if file is None:
        raise BusinessRuleError(message="No file provided", code="missing_file")

    content = await file.read(settings.max_upload_bytes + 1)
    if len(content) > settings.max_upload_bytes:
        raise BusinessRuleError(
            message=f"File exceeds {settings.max_upload_size_mb} MB",
            code="file_too_large",
        )

    result = await importer.import_csv(caller, content)
    return ImportResponse(
        success=result.success,
        imported_count=result.imported_count,
        errors=[error.to_dict() for error in result.errors],
        message=result.message,
        code=result.code,
    )


@router.post("", response_model=LeadResponse, status_code=status.HTTP_201_CREATED)
async def create_lead(
    payload: LeadIn,
    caller: Optional[Caller] = Depends(get_caller),
    writer: LeadWriter = Depends(get_lead_writer),
):
    lead = await writer.create(caller, payload.candidate())
    return _lead_response(lead)


@router.get("/{lead_id}", response_model=LeadDetailResponse)
async def get_lead(
    lead_id: UUID,
    caller: Optional[Caller] = Depends(get_caller),
    writer: LeadWriter = Depends(get_lead_writer),
):
    """Lead with its most recent history entries, newest first."""
    detail = await writer.get(caller, lead_id, history_limit=settings.history_limit)
    return LeadDetailResponse(
        lead=_lead_response(detail.lead),
        history=[HistoryEntryResponse.model_validate(entry.to_wire()) for entry in detail.history],
    )


@router.put("/{lead_id}", response_model=LeadResponse)
async def update_lead(
    lead_id: UUID,
    payload: LeadUpdate,
    caller: Optional[Caller] = Depends(get_caller),
    writer: LeadWriter = Depends(get_lead_writer),
):
    lead = await writer.update(caller, lead_id, payload.candidate(), token=payload.updated_at)
    return _lead_response(lead)


@router.delete("/{lead_id}", response_model=MessageResponse)
async def delete_lead(
    lead_id: UUID,
    caller: Optional[Caller] = Depends(get_caller),
    writer: LeadWriter = Depends(get_lead_writer),
):
    await writer.delete(caller, lead_id)
    return MessageResponse(message="Lead deleted successfully")
