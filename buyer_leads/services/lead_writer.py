"""Single-record write pipeline: create, update, delete and detail reads.

Every mutation runs authentication, ownership, validation and (for updates) the
optimistic-concurrency check before touching the store, then appends a history
entry in the same commit as the change itself.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from buyer_leads.core.exceptions import (
    AuthorizationError,
    BaseAPIException,
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
)
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.base import as_utc, utcnow
from buyer_leads.models.history import LeadHistory
from buyer_leads.models.lead import DEFAULT_STATUS, LEAD_FIELDS, Lead
from buyer_leads.services.auth import Caller, require_caller
from buyer_leads.services.diff import compute_diff, creation_diff
from buyer_leads.services.rate_limit import RateLimiter
from buyer_leads.services.store import Storage
from buyer_leads.services.validation import ValidationResult, validate_candidate

logger = get_structlog_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def to_millis(value: datetime) -> int:
    """Milliseconds since the epoch; the granularity concurrency tokens are compared at."""
    return (as_utc(value) - _EPOCH) // _ONE_MS


def prepare_new_lead(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Complete validated fields into a full record for insertion."""
    values = {name: data.get(name) for name in LEAD_FIELDS}
    values["tags"] = list(data.get("tags") or [])
    values["status"] = data.get("status") or DEFAULT_STATUS
    return values


def raise_for_violations(result: ValidationResult) -> None:
    if not result.is_valid:
        raise ValidationError(
            message="Validation failed",
            details={"errors": [v.to_dict() for v in result.violations]},
        )


@dataclass
class LeadDetail:
    lead: Lead
    history: List[LeadHistory]


class LeadWriter:
    def __init__(
        self,
        storage: Storage,
        rate_limiter: Optional[RateLimiter] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.rate_limiter = rate_limiter
        self.clock = clock

    async def create(self, caller: Optional[Caller], candidate: Mapping[str, Any]) -> Lead:
        caller = require_caller(caller)
        if self.rate_limiter is not None:
            await self.rate_limiter.check(f"create:{caller.id}")

        result = validate_candidate(candidate)
        raise_for_violations(result)
        values = prepare_new_lead(result.data)

        now = self.clock()
        try:
            lead = await self.storage.leads.insert(values, owner_id=caller.id, now=now)
            await self.storage.history.append(
                lead_id=lead.id,
                changed_by=caller.id,
                action="created",
                diff=creation_diff(values),
                changed_at=now,
            )
            await self.storage.commit()
        except BaseAPIException:
            await self.storage.rollback()
            raise

        logger.info("lead.created", lead_id=str(lead.id), owner_id=str(caller.id))
        return lead

    async def update(
        self,
        caller: Optional[Caller],
        lead_id: uuid.UUID,
        candidate: Mapping[str, Any],
        token: Optional[datetime] = None,
    ) -> Lead:
        caller = require_caller(caller)
        current = await self._get_owned(caller, lead_id)

        if token is not None and to_millis(token) != to_millis(current.updated_at):
            logger.info("lead.update_conflict", lead_id=str(lead_id), caller_id=str(caller.id))
            raise ConcurrencyConflictError(
                details={"lead_id": str(lead_id), "updated_at": as_utc(current.updated_at).isoformat()},
            )

        previous = current.field_values()
        result = validate_candidate(candidate, current=previous)
        raise_for_violations(result)

        changes = compute_diff(previous, result.data)
        expected = current.updated_at
        now = self._next_timestamp(expected)

        try:
            updated = await self.storage.leads.update(
                lead_id,
                {name: change["new"] for name, change in changes.items()},
                expected_updated_at=expected,
                updated_at=now,
            )
            if updated is None:
                logger.info("lead.update_lost_race", lead_id=str(lead_id), caller_id=str(caller.id))
                raise ConcurrencyConflictError(details={"lead_id": str(lead_id)})

            if changes:
                await self.storage.history.append(
                    lead_id=lead_id,
                    changed_by=caller.id,
                    action="updated",
                    diff=changes,
                    changed_at=now,
                )
            await self.storage.commit()
        except BaseAPIException:
            await self.storage.rollback()
            raise

        logger.info("lead.updated", lead_id=str(lead_id), changed_fields=sorted(changes))
        return updated

    async def delete(self, caller: Optional[Caller], lead_id: uuid.UUID) -> None:
        caller = require_caller(caller)
        await self._get_owned(caller, lead_id)

        try:
            await self.storage.leads.delete(lead_id)
            await self.storage.commit()
        except BaseAPIException:
            await self.storage.rollback()
            raise

        logger.info("lead.deleted", lead_id=str(lead_id), caller_id=str(caller.id))

    async def get(
        self,
        caller: Optional[Caller],
        lead_id: uuid.UUID,
        history_limit: Optional[int] = None,
    ) -> LeadDetail:
        caller = require_caller(caller)
        lead = await self._get_owned(caller, lead_id)
        history = await self.storage.history.list_by_lead(lead_id, newest_first=True, limit=history_limit)
        return LeadDetail(lead=lead, history=history)

    async def _get_owned(self, caller: Caller, lead_id: uuid.UUID) -> Lead:
        lead = await self.storage.leads.get(lead_id)
        if lead is None:
            raise NotFoundError(message="Lead not found", details={"lead_id": str(lead_id)})
        if lead.owner_id != caller.id:
            logger.warning("lead.forbidden", lead_id=str(lead_id), caller_id=str(caller.id))
            raise AuthorizationError(
                message="You can only modify your own leads",
                details={"lead_id": str(lead_id)},
            )
        return lead

    def _next_timestamp(self, previous: datetime) -> datetime:
        # Tokens must change on every write, even within one clock millisecond.
        now = self.clock()
        floor = as_utc(previous).replace(microsecond=(as_utc(previous).microsecond // 1000) * 1000)
        if to_millis(now) <= to_millis(floor):
            return floor + _ONE_MS
        return now
