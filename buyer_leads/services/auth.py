# buyer_leads/services/auth.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.exceptions import AuthenticationError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.models.user import User

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class Caller:
    """The authenticated user on whose behalf an operation runs."""

    id: uuid.UUID
    email: Optional[str] = None


def require_caller(caller: Optional[Caller]) -> Caller:
    if caller is None:
        raise AuthenticationError(message="Authentication required")
    return caller


async def get_caller(request: Request) -> Optional[Caller]:
    """Caller attached by the auth middleware, or ``None`` for anonymous requests."""
    user = getattr(request.state, "user", None)
    if not user:
        return None
    return Caller(id=uuid.UUID(str(user["id"])), email=user.get("email"))


async def find_user(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def find_or_create_user(session: AsyncSession, email: str, name: Optional[str] = None) -> User:
    """Sign-in by email: returns the existing user or registers a new one."""
    email = email.strip().lower()
    user = await find_user(session, email)
    if user is not None:
        return user

    user = User(id=uuid.uuid4(), email=email, name=name or email.split("@")[0])
    session.add(user)
    await session.commit()
    logger.info("user.created", user_id=str(user.id))
    return user
