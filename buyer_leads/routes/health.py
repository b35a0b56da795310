# buyer_leads/routes/health.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from buyer_leads.core.config import settings
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.db.session import health_check as database_health_check
from buyer_leads.services.redis import health_check as redis_health_check

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])

_started_at = time.monotonic()


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    timestamp: str
    uptime: float
    checks: Dict[str, Dict[str, Any]]


@router.get("/health", response_model=HealthCheckResponse)
async def health():
    """Database and Redis connectivity.

    The database is required; Redis only backs the create rate limit, so an
    unreachable Redis degrades the service rather than failing it.
    """
    checks = {
        "database": await database_health_check(),
        "redis": await redis_health_check(),
    }

    if checks["database"].get("status") != "healthy":
        overall = "unhealthy"
    elif checks["redis"].get("status") != "healthy":
        overall = "degraded"
    else:
        overall = "healthy"

    if overall != "healthy":
        logger.warning("health.check_failed", status=overall)

    body = HealthCheckResponse(
        status=overall,
        service="buyer-leads",
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=round(time.monotonic() - _started_at, 3),
        checks=checks,
    )
    return JSONResponse(
        status_code=503 if overall == "unhealthy" else 200,
        content=body.model_dump(),
    )
