from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from jose import ExpiredSignatureError, JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware

from buyer_leads.core.config import settings
from buyer_leads.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

_TOKEN_SCHEMES = ("bearer", "token")


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"code": "unauthorized", "message": message, "details": {}},
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Attach the bearer-token user to ``request.state.user``.

    Requests without a token pass through anonymously; the lead services reject
    them. A token that is present but invalid or expired is refused here.
    """

    def __init__(self, app, exempt_paths: Optional[Iterable[str]] = None):
        super().__init__(app)
        self.exempt_paths = frozenset(exempt_paths or (
            "/",
            "/metrics",
            "/docs",
            "/redoc",
            "/openapi.json",
            f"{settings.api_prefix}/health",
            f"{settings.api_prefix}/auth/token",
        ))

    async def dispatch(self, request: Request, call_next):
        token = None if request.url.path in self.exempt_paths else self._bearer_token(request)
        if token is None:
            return await call_next(request)

        try:
            claims = TokenManager.decode(token)
            user_id = uuid.UUID(str(claims["sub"]))
        except ExpiredSignatureError:
            logger.warning("auth.expired_token", path=request.url.path)
            return _unauthorized("Token has expired")
        except (JWTError, KeyError, ValueError) as e:
            logger.warning("auth.invalid_token", error=str(e), path=request.url.path)
            return _unauthorized("Invalid authentication token")

        request.state.user = {"id": str(user_id), "email": claims.get("email")}
        return await call_next(request)

    @staticmethod
    def _bearer_token(request: Request) -> Optional[str]:
        """``Authorization: Bearer <jwt>`` (``Token <jwt>`` also accepted)."""
        scheme, _, token = request.headers.get("Authorization", "").strip().partition(" ")
        token = token.strip()
        if scheme.lower() not in _TOKEN_SCHEMES or not token or " " in token:
            return None
        return token


class TokenManager:
    """Issue and verify HS256 access tokens."""

    @staticmethod
    def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        issued_at = datetime.now(timezone.utc)
        lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
        payload = {
            **claims,
            "iat": issued_at,
            "exp": issued_at + lifetime,
            "jti": uuid.uuid4().hex,
            "type": "access",
        }
        return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)

    @staticmethod
    def decode(token: str) -> Dict[str, Any]:
        """Verified claims; raises ``JWTError`` (or ``ExpiredSignatureError``) otherwise."""
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])


def issue_user_token(user_id: uuid.UUID, email: Optional[str] = None) -> str:
    return TokenManager.create_access_token({"sub": str(user_id), "email": email})
