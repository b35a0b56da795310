# buyer_leads/middleware/logging.py
from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from buyer_leads.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

_QUIET_PATHS = frozenset({"/metrics"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """One ``request.received`` and one ``response.sent`` event per request, with timing."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        quiet = path in _QUIET_PATHS
        started = time.perf_counter()

        if not quiet:
            logger.info(
                "request.received",
                method=request.method,
                path=path,
                query=str(request.query_params) or None,
                client_ip=request.client.host if request.client else None,
            )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                method=request.method,
                path=path,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
                exception_type=type(e).__name__,
            )
            raise

        elapsed = time.perf_counter() - started
        response.headers["X-Response-Time"] = f"{elapsed:.3f}"

        if not quiet:
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "response.sent",
                method=request.method,
                path=path,
                status_code=response.status_code,
                elapsed_ms=round(elapsed * 1000, 2),
            )
        return response
