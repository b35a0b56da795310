# buyer_leads/routes/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import get_session
from buyer_leads.middleware.auth import issue_user_token
from buyer_leads.schemas.auth import TokenRequest, TokenResponse
from buyer_leads.services.auth import find_or_create_user

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=TokenResponse)
async def issue_token(payload: TokenRequest, session: AsyncSession = Depends(get_session)):
    """Demo sign-in: any email gets a bearer token, registering the user on first use."""
    user = await find_or_create_user(session, payload.email, payload.name)
    logger.info("auth.token_issued", user_id=str(user.id))
    return TokenResponse(access_token=issue_user_token(user.id, user.email), user_id=user.id)
