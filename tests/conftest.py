import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import buyer_leads.models  # noqa: F401
from buyer_leads.core.exceptions import DatabaseError, RateLimitError
from buyer_leads.db.base import Base
from buyer_leads.models.history import LeadHistory
from buyer_leads.models.lead import LEAD_FIELDS, Lead
from buyer_leads.services.auth import Caller
from buyer_leads.services.rate_limit import RateLimitStatus


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


class FakeLeadStore:
    def __init__(self):
        self.rows: Dict[uuid.UUID, Lead] = {}
        self.fail_on_insert: Optional[int] = None
        self.lose_next_update = False
        self.inserts = 0

    async def get(self, lead_id):
        return self.rows.get(lead_id)

    async def insert(self, values, *, owner_id, now):
        self.inserts += 1
        if self.fail_on_insert is not None and self.inserts >= self.fail_on_insert:
            raise DatabaseError(message="Database operation failed")
        lead = Lead(
            id=uuid.uuid4(),
            owner_id=owner_id,
            created_at=now,
            updated_at=now,
            **{LEAD_FIELDS[name]: value for name, value in values.items()},
        )
        self.rows[lead.id] = lead
        return lead

    async def update(self, lead_id, changes, *, expected_updated_at, updated_at):
        lead = self.rows.get(lead_id)
        if lead is None or lead.updated_at != expected_updated_at or self.lose_next_update:
            self.lose_next_update = False
            return None
        for name, value in changes.items():
            setattr(lead, LEAD_FIELDS[name], value)
        lead.updated_at = updated_at
        return lead

    async def delete(self, lead_id):
        self.rows.pop(lead_id, None)

    async def list(self, filters, sort, limit=None, offset=0):
        return list(self.rows.values())

    async def count(self, filters):
        return len(self.rows)


class FakeHistoryStore:
    def __init__(self):
        self.entries: List[LeadHistory] = []

    async def append(self, *, lead_id, changed_by, action, diff, changed_at):
        entry = LeadHistory(
            id=uuid.uuid4(),
            lead_id=lead_id,
            changed_by=changed_by,
            changed_at=changed_at,
            action=action,
            diff=dict(diff),
        )
        self.entries.append(entry)
        return entry

    async def list_by_lead(self, lead_id, *, newest_first=True, limit=None):
        entries = [e for e in self.entries if e.lead_id == lead_id]
        entries.sort(key=lambda e: e.changed_at, reverse=newest_first)
        return entries[:limit] if limit is not None else entries


class FakeStorage:
    """In-memory unit of work; commit/rollback are counted, not enforced."""

    def __init__(self):
        self.leads = FakeLeadStore()
        self.history = FakeHistoryStore()
        self.commits = 0
        self.rollbacks = 0

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1


class FakeRateLimiter:
    def __init__(self, limit: int = 5, period: int = 60, reset_at: int = 1_714_554_060):
        self.limit = limit
        self.period = period
        self.reset_at = reset_at
        self.hits: Dict[str, int] = {}

    async def check(self, key: str) -> RateLimitStatus:
        self.hits[key] = self.hits.get(key, 0) + 1
        if self.hits[key] > self.limit:
            raise RateLimitError(
                message="Too many requests. Please try again later.",
                retry_after=self.period,
                details={
                    "limit": self.limit,
                    "period": self.period,
                    "retry_after": self.period,
                    "reset_at": self.reset_at,
                },
            )
        return RateLimitStatus(limit=self.limit, remaining=self.limit - self.hits[key], reset_at=self.reset_at)


def make_lead_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "fullName": "Asha Verma",
        "email": "asha@example.com",
        "phone": "9876543210",
        "city": "Mohali",
        "propertyType": "Apartment",
        "bhk": "2",
        "purpose": "Buy",
        "budgetMin": 4000000,
        "budgetMax": 6000000,
        "timeline": "0-3m",
        "source": "Website",
        "notes": "Prefers east facing",
        "tags": ["hot", "loan"],
    }
    payload.update(overrides)
    return {key: value for key, value in payload.items() if value is not ...}


def make_csv_row(**overrides: Optional[str]) -> Mapping[str, Optional[str]]:
    row = {
        "fullName": "Ravi Kumar",
        "email": "ravi@example.com",
        "phone": "9123456780",
        "city": "Chandigarh",
        "propertyType": "Villa",
        "bhk": "3",
        "purpose": "Buy",
        "budgetMin": "8000000",
        "budgetMax": "12000000",
        "timeline": "3-6m",
        "source": "Referral",
        "status": None,
        "notes": None,
        "tags": "garden, corner",
    }
    row.update(overrides)
    return row


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def rate_limiter():
    return FakeRateLimiter()


@pytest.fixture
def owner():
    return Caller(id=uuid.uuid4(), email="owner@example.com")


@pytest.fixture
def other_user():
    return Caller(id=uuid.uuid4(), email="other@example.com")


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
