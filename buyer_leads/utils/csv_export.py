"""CSV rendering for lead exports."""
from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from buyer_leads.db.base import as_utc
from buyer_leads.models.lead import Lead

EXPORT_COLUMNS: List[str] = [
    "fullName",
    "email",
    "phone",
    "city",
    "propertyType",
    "bhk",
    "purpose",
    "budgetMin",
    "budgetMax",
    "timeline",
    "source",
    "status",
    "notes",
    "tags",
    "createdAt",
    "updatedAt",
]


def format_timestamp(value: Optional[datetime]) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. ``2024-05-01T09:30:00.000Z``."""
    if value is None:
        return ""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def lead_to_csv_record(lead: Lead) -> Dict[str, str]:
    values = lead.field_values()
    record = {}
    for column in EXPORT_COLUMNS[:-2]:
        value = values.get(column)
        if column == "tags":
            record[column] = ",".join(value or [])
        else:
            record[column] = "" if value is None else str(value)
    record["createdAt"] = format_timestamp(lead.created_at)
    record["updatedAt"] = format_timestamp(lead.updated_at)
    return record


def render_csv(records: Iterable[Dict[str, str]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_COLUMNS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(records)
    return buffer.getvalue()
