# buyer_leads/schemas/__init__.py
"""
Pydantic schemas for request/response validation and serialization.
"""

from buyer_leads.schemas.auth import TokenRequest, TokenResponse
from buyer_leads.schemas.lead import (
    HistoryEntryResponse,
    LeadDetailResponse,
    LeadIn,
    LeadListResponse,
    LeadResponse,
    LeadUpdate,
    MessageResponse,
)
from buyer_leads.schemas.lead_import import ImportResponse, ImportRowErrorResponse

__all__ = [
    "HistoryEntryResponse",
    "ImportResponse",
    "ImportRowErrorResponse",
    "LeadDetailResponse",
    "LeadIn",
    "LeadListResponse",
    "LeadResponse",
    "LeadUpdate",
    "MessageResponse",
    "TokenRequest",
    "TokenResponse",
]
