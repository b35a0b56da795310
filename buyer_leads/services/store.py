"""Record store gateway for leads and their history.

The pipelines only depend on the protocols below; :class:`SqlStorage` is the
SQLAlchemy-backed implementation used by the API and the CLI.
"""
from __future__ import annotations

import functools
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.exceptions import DatabaseError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.models.history import LeadHistory
from buyer_leads.models.lead import LEAD_FIELDS, Lead

logger = get_structlog_logger(__name__)

SORT_COLUMNS = {
    "fullName": Lead.full_name,
    "email": Lead.email,
    "phone": Lead.phone,
    "city": Lead.city,
    "propertyType": Lead.property_type,
    "status": Lead.status,
    "timeline": Lead.timeline,
    "budgetMin": Lead.budget_min,
    "budgetMax": Lead.budget_max,
    "createdAt": Lead.created_at,
    "updatedAt": Lead.updated_at,
}
DEFAULT_SORT_FIELD = "updatedAt"


@dataclass(frozen=True)
class LeadFilter:
    """AND-combined list filters; ``None`` means "don't filter on this"."""

    search: Optional[str] = None
    city: Optional[str] = None
    property_type: Optional[str] = None
    status: Optional[str] = None
    timeline: Optional[str] = None


@dataclass(frozen=True)
class LeadSort:
    field: str = DEFAULT_SORT_FIELD
    descending: bool = True


class LeadStore(Protocol):
    async def get(self, lead_id: uuid.UUID) -> Optional[Lead]: ...

    async def insert(self, values: Mapping[str, Any], *, owner_id: uuid.UUID, now: datetime) -> Lead: ...

    async def update(
        self,
        lead_id: uuid.UUID,
        changes: Mapping[str, Any],
        *,
        expected_updated_at: datetime,
        updated_at: datetime,
    ) -> Optional[Lead]: ...

    async def delete(self, lead_id: uuid.UUID) -> None: ...

    async def list(
        self,
        filters: LeadFilter,
        sort: LeadSort,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Lead]: ...

    async def count(self, filters: LeadFilter) -> int: ...


class HistoryStore(Protocol):
    async def append(
        self,
        *,
        lead_id: uuid.UUID,
        changed_by: uuid.UUID,
        action: str,
        diff: Mapping[str, Any],
        changed_at: datetime,
    ) -> LeadHistory: ...

    async def list_by_lead(
        self,
        lead_id: uuid.UUID,
        *,
        newest_first: bool = True,
        limit: Optional[int] = None,
    ) -> List[LeadHistory]: ...


class Storage(Protocol):
    leads: LeadStore
    history: HistoryStore

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


def _translate_errors(method):
    """Surface driver and ORM failures as :class:`DatabaseError`."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except (SQLAlchemyError, OverflowError) as e:
            logger.error("store.error", operation=method.__qualname__, error=str(e))
            raise DatabaseError(
                message="Database operation failed",
                details={"operation": method.__name__},
            ) from e

    return wrapper


def _columns(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {LEAD_FIELDS[name]: value for name, value in values.items() if name in LEAD_FIELDS}


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlLeadStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def get(self, lead_id: uuid.UUID) -> Optional[Lead]:
        return await self.session.get(Lead, lead_id)

    @_translate_errors
    async def insert(self, values: Mapping[str, Any], *, owner_id: uuid.UUID, now: datetime) -> Lead:
        lead = Lead(
            id=uuid.uuid4(),
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **_columns(values),
        )
        self.session.add(lead)
        await self.session.flush()
        return lead

    @_translate_errors
    async def update(
        self,
        lead_id: uuid.UUID,
        changes: Mapping[str, Any],
        *,
        expected_updated_at: datetime,
        updated_at: datetime,
    ) -> Optional[Lead]:
        """Compare-and-swap on ``updated_at``; ``None`` when another write got there first."""
        stmt = (
            update(Lead)
            .where(Lead.id == lead_id, Lead.updated_at == expected_updated_at)
            .values(updated_at=updated_at, **_columns(changes))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            return None
        return await self.session.get(Lead, lead_id, populate_existing=True)

    @_translate_errors
    async def delete(self, lead_id: uuid.UUID) -> None:
        # Explicit so history goes with the lead even where FK cascades are off.
        await self.session.execute(
            delete(LeadHistory)
            .where(LeadHistory.lead_id == lead_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(Lead).where(Lead.id == lead_id).execution_options(synchronize_session=False)
        )

    @_translate_errors
    async def list(
        self,
        filters: LeadFilter,
        sort: LeadSort,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Lead]:
        stmt = select(Lead).where(*self._criteria(filters)).order_by(*self._ordering(sort))
        if limit is not None:
            stmt = stmt.limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    @_translate_errors
    async def count(self, filters: LeadFilter) -> int:
        stmt = select(func.count()).select_from(Lead).where(*self._criteria(filters))
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    @staticmethod
    def _criteria(filters: LeadFilter) -> list:
        criteria = []
        if filters.search:
            term = f"%{_escape_like(filters.search)}%"
            criteria.append(
                or_(
                    Lead.full_name.ilike(term, escape="\\"),
                    Lead.phone.ilike(term, escape="\\"),
                    Lead.email.ilike(term, escape="\\"),
                )
            )
        if filters.city:
            criteria.append(Lead.city == filters.city)
        if filters.property_type:
            criteria.append(Lead.property_type == filters.property_type)
        if filters.status:
            criteria.append(Lead.status == filters.status)
        if filters.timeline:
            criteria.append(Lead.timeline == filters.timeline)
        return criteria

    @staticmethod
    def _ordering(sort: LeadSort) -> list:
        column = SORT_COLUMNS.get(sort.field, SORT_COLUMNS[DEFAULT_SORT_FIELD])
        if sort.descending:
            return [column.desc(), Lead.id.desc()]
        return [column.asc(), Lead.id.asc()]


class SqlHistoryStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def append(
        self,
        *,
        lead_id: uuid.UUID,
        changed_by: uuid.UUID,
        action: str,
        diff: Mapping[str, Any],
        changed_at: datetime,
    ) -> LeadHistory:
        entry = LeadHistory(
            id=uuid.uuid4(),
            lead_id=lead_id,
            changed_by=changed_by,
            changed_at=changed_at,
            action=action,
            diff=dict(diff),
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    @_translate_errors
    async def list_by_lead(
        self,
        lead_id: uuid.UUID,
        *,
        newest_first: bool = True,
        limit: Optional[int] = None,
    ) -> List[LeadHistory]:
        order = LeadHistory.changed_at.desc() if newest_first else LeadHistory.changed_at.asc()
        stmt = select(LeadHistory).where(LeadHistory.lead_id == lead_id).order_by(order)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class SqlStorage:
    """Unit of work over one :class:`AsyncSession`."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.leads = SqlLeadStore(session)
        self.history = SqlHistoryStore(session)

    @_translate_errors
    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
