from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from buyer_leads.core.logging import set_request_id

_ID_HEADERS = ("X-Request-ID", "X-Correlation-ID")


def _trace_id(traceparent: Optional[str]) -> Optional[str]:
    # W3C trace context: 00-<32 hex trace id>-<16 hex parent id>-<flags>
    if traceparent and traceparent.startswith("00-") and len(traceparent) >= 35:
        return traceparent[3:35]
    return None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id into the log context and echo it back as ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next):
        request_id = next(
            (request.headers[name] for name in _ID_HEADERS if request.headers.get(name)),
            None,
        ) or _trace_id(request.headers.get("traceparent")) or uuid.uuid4().hex

        request.state.request_id = request_id
        set_request_id(None)
        set_request_id(request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
