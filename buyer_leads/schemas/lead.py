# buyer_leads/schemas/lead.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LeadIn(CamelModel):
    """Request shape only; field rules are applied by the lead validator."""

    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    property_type: Optional[str] = None
    bhk: Optional[Union[str, int]] = None
    purpose: Optional[str] = None
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    timeline: Optional[str] = None
    source: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None

    def candidate(self) -> Dict[str, Any]:
        """Fields the client actually sent, keyed by wire name."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude={"updated_at"})


class LeadUpdate(LeadIn):
    # Last updatedAt the client saw; the optimistic-concurrency token.
    updated_at: Optional[datetime] = None


class LeadResponse(CamelModel):
    id: UUID
    full_name: str
    email: Optional[str] = None
    phone: str
    city: str
    property_type: str
    bhk: Optional[str] = None
    purpose: str
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    timeline: str
    source: str
    status: str
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    owner_id: UUID
    created_at: datetime
    updated_at: datetime


class HistoryEntryResponse(CamelModel):
    id: UUID
    lead_id: UUID
    changed_by: UUID
    changed_at: datetime
    action: str
    diff: Dict[str, Dict[str, Any]]


class LeadDetailResponse(CamelModel):
    lead: LeadResponse
    history: List[HistoryEntryResponse]


class LeadListResponse(CamelModel):
    items: List[LeadResponse]
    current_page: int
    total_pages: int
    total_count: int


class MessageResponse(BaseModel):
    message: str
