# buyer_leads/schemas/lead_import.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from buyer_leads.schemas.lead import CamelModel


class ImportRowErrorResponse(BaseModel):
    row: int
    field: str
    message: str


class ImportResponse(CamelModel):
    success: bool
    imported_count: int
    errors: List[ImportRowErrorResponse]
    message: str
    code: Optional[str] = None
