from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional

from buyer_leads.core.config import settings
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.models.lead import CITIES, PROPERTY_TYPES, STATUSES, TIMELINES, Lead
from buyer_leads.services.auth import Caller, require_caller
from buyer_leads.services.store import DEFAULT_SORT_FIELD, SORT_COLUMNS, LeadFilter, LeadSort, Storage
from buyer_leads.utils.csv_export import lead_to_csv_record, render_csv

logger = get_structlog_logger(__name__)


@dataclass
class LeadPage:
    items: List[Lead]
    current_page: int
    total_pages: int
    total_count: int


def _enum_param(params: Mapping[str, Any], name: str, choices: tuple) -> Optional[str]:
    value = params.get(name)
    return value if value in choices else None


def build_filter(params: Mapping[str, Any]) -> LeadFilter:
    """Recognized filters from raw query parameters; invalid values are dropped."""
    search = params.get("search")
    search = search.strip() if isinstance(search, str) else None
    return LeadFilter(
        search=search or None,
        city=_enum_param(params, "city", CITIES),
        property_type=_enum_param(params, "propertyType", PROPERTY_TYPES),
        status=_enum_param(params, "status", STATUSES),
        timeline=_enum_param(params, "timeline", TIMELINES),
    )


def build_sort(sort_by: Optional[str], sort_order: Optional[str]) -> LeadSort:
    """Unknown fields fall back to the default ``updatedAt desc`` ordering."""
    if sort_by not in SORT_COLUMNS:
        return LeadSort(field=DEFAULT_SORT_FIELD, descending=True)
    return LeadSort(field=sort_by, descending=(sort_order or "desc").lower() != "asc")


def parse_page(value: Any) -> int:
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return max(page, 1)


class LeadQuery:
    def __init__(self, storage: Storage, page_size: Optional[int] = None):
        self.storage = storage
        self.page_size = page_size or settings.page_size

    async def list_page(self, caller: Optional[Caller], params: Mapping[str, Any]) -> LeadPage:
        require_caller(caller)
        filters = build_filter(params)
        sort = build_sort(params.get("sortBy"), params.get("sortOrder"))
        page = parse_page(params.get("page"))

        total_count = await self.storage.leads.count(filters)
        total_pages = math.ceil(total_count / self.page_size)
        items: List[Lead] = []
        if page <= total_pages:
            items = await self.storage.leads.list(
                filters,
                sort,
                limit=self.page_size,
                offset=(page - 1) * self.page_size,
            )

        logger.debug("lead_query.page", page=page, total_count=total_count, filters=asdict(filters))
        return LeadPage(items=items, current_page=page, total_pages=total_pages, total_count=total_count)

    async def export_rows(self, caller: Optional[Caller], params: Mapping[str, Any]) -> List[Dict[str, str]]:
        require_caller(caller)
        filters = build_filter(params)
        sort = build_sort(params.get("sortBy"), params.get("sortOrder"))
        leads = await self.storage.leads.list(filters, sort)
        return [lead_to_csv_record(lead) for lead in leads]

    async def export_csv(self, caller: Optional[Caller], params: Mapping[str, Any]) -> str:
        rows = await self.export_rows(caller, params)
        logger.info("lead_query.exported", rows=len(rows))
        return render_csv(rows)
