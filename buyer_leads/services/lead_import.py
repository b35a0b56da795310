"""Bulk CSV import: validate every row, then commit all of them or none.

The pipeline has two phases. :func:`validate_rows` is pure and turns raw rows
into either validated records or row-level errors. Only when it reports no
errors at all does :class:`LeadImporter` run the commit loop, in file order.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import DatabaseError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.base import utcnow
from buyer_leads.models.lead import DEFAULT_STATUS, LEAD_FIELDS
from buyer_leads.services.auth import Caller, require_caller
from buyer_leads.services.diff import creation_diff
from buyer_leads.services.lead_writer import prepare_new_lead
from buyer_leads.services.store import Storage
from buyer_leads.services.validation import Violation, validate_candidate
from buyer_leads.utils.csv_parser import parse_csv_leads

logger = get_structlog_logger(__name__)

FIRST_DATA_ROW = 2  # row 1 is the header
_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
_INTEGER_FIELDS = ("budgetMin", "budgetMax")


@dataclass(frozen=True)
class ImportRowError:
    row: int
    field: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ImportResult:
    success: bool
    imported_count: int
    errors: List[ImportRowError] = field(default_factory=list)
    message: str = ""
    code: Optional[str] = None


@dataclass(frozen=True)
class ValidatedRow:
    row: int
    values: Dict[str, Any]


def coerce_row(raw: Mapping[str, Optional[str]]) -> Tuple[Dict[str, Any], List[Violation]]:
    """Turn raw CSV cells into typed candidate values.

    Numbers that do not parse are reported here since the validator only
    ever sees the coerced value.
    """
    candidate: Dict[str, Any] = {}
    problems: List[Violation] = []

    for name in LEAD_FIELDS:
        value = raw.get(name)
        if isinstance(value, str):
            value = value.strip()
        if value == "":
            value = None

        if name in _INTEGER_FIELDS and value is not None:
            if _INTEGER_PATTERN.match(value):
                value = int(value)
            else:
                problems.append(Violation(name, "Budget must be a whole number"))
                value = None
        elif name == "tags":
            value = [tag.strip() for tag in value.split(",") if tag.strip()] if value else []
        elif name == "status" and value is None:
            value = DEFAULT_STATUS

        candidate[name] = value

    return candidate, problems


def validate_rows(
    rows: Sequence[Mapping[str, Optional[str]]],
) -> Tuple[List[ValidatedRow], List[ImportRowError]]:
    """Validate every row; never stops at the first bad one."""
    validated: List[ValidatedRow] = []
    errors: List[ImportRowError] = []

    for offset, raw in enumerate(rows):
        row_number = offset + FIRST_DATA_ROW
        candidate, problems = coerce_row(raw)
        result = validate_candidate(candidate)

        row_errors = [
            ImportRowError(row=row_number, field=v.field, message=v.message)
            for v in problems + result.violations
        ]
        if row_errors:
            errors.extend(row_errors)
        else:
            validated.append(ValidatedRow(row=row_number, values=prepare_new_lead(result.data)))

    return validated, errors


class LeadImporter:
    def __init__(
        self,
        storage: Storage,
        max_rows: Optional[int] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        self.storage = storage
        self.max_rows = max_rows if max_rows is not None else settings.import_max_rows
        self.clock = clock

    async def import_csv(self, caller: Optional[Caller], content: bytes) -> ImportResult:
        caller = require_caller(caller)
        try:
            rows = parse_csv_leads(content)
        except ValueError as e:
            return ImportResult(
                success=False,
                imported_count=0,
                errors=[ImportRowError(row=0, field="file", message=str(e))],
                message="An error occurred while processing the file",
                code="invalid_file",
            )
        return await self.run(caller, rows)

    async def run(
        self,
        caller: Optional[Caller],
        rows: Sequence[Mapping[str, Optional[str]]],
    ) -> ImportResult:
        caller = require_caller(caller)

        if len(rows) > self.max_rows:
            logger.info("lead_import.capacity_exceeded", rows=len(rows), max_rows=self.max_rows)
            return ImportResult(
                success=False,
                imported_count=0,
                errors=[ImportRowError(row=0, field="file", message=f"Maximum {self.max_rows} rows allowed")],
                message=f"File contains too many rows. Maximum {self.max_rows} rows allowed.",
                code="capacity_exceeded",
            )

        validated, errors = validate_rows(rows)
        if errors:
            failed_rows = len({error.row for error in errors})
            logger.info("lead_import.validation_failed", rows=len(rows), failed_rows=failed_rows)
            return ImportResult(
                success=False,
                imported_count=0,
                errors=errors,
                message=f"Validation failed for {failed_rows} row(s)",
                code="validation_failed",
            )

        return await self._commit(caller, validated)

    async def _commit(self, caller: Caller, validated: Sequence[ValidatedRow]) -> ImportResult:
        # Rows commit one at a time: a store failure leaves earlier rows in place.
        imported = 0
        for item in validated:
            now = self.clock()
            try:
                lead = await self.storage.leads.insert(item.values, owner_id=caller.id, now=now)
                await self.storage.history.append(
                    lead_id=lead.id,
                    changed_by=caller.id,
                    action="imported",
                    diff=creation_diff(item.values),
                    changed_at=now,
                )
                await self.storage.commit()
            except DatabaseError as e:
                await self.storage.rollback()
                logger.error(
                    "lead_import.persistence_failed",
                    row=item.row,
                    imported=imported,
                    error=e.message,
                )
                return ImportResult(
                    success=False,
                    imported_count=imported,
                    errors=[ImportRowError(row=item.row, field="database", message="Database error during import")],
                    message=f"Database error after importing {imported} row(s); remaining rows were not imported",
                    code="persistence_error",
                )
            imported += 1

        logger.info("lead_import.completed", imported=imported, owner_id=str(caller.id))
        return ImportResult(
            success=True,
            imported_count=imported,
            errors=[],
            message=f"Successfully imported {imported} buyer lead(s)",
        )
