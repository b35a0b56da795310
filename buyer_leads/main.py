# buyer_leads/main.py
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from buyer_leads import __version__
from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import BaseAPIException, RateLimitError
from buyer_leads.core.logging import configure_structlog, get_structlog_logger
from buyer_leads.db.session import dispose_engine
from buyer_leads.middleware import AuthMiddleware, LoggingMiddleware, RequestIdMiddleware
from buyer_leads.routes import auth_router, health_router, leads_router
from buyer_leads.services.redis import close_redis_pool, init_redis_pool

configure_structlog()
logger = get_structlog_logger(__name__)


def _init_sentry() -> None:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        integrations=[FastApiIntegration(), StarletteIntegration()],
        traces_sample_rate=1.0 if settings.is_development else 0.1,
        send_default_pii=False,
    )
    logger.info("sentry.initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("application.starting", environment=settings.environment)

    # Only the create rate limit needs Redis and it fails open
    try:
        await init_redis_pool()
    except BaseAPIException:
        if settings.is_production:
            raise
        logger.warning("redis.unavailable_at_startup")

    if settings.sentry_dsn:
        _init_sentry()

    yield

    logger.info("application.shutting_down")
    await close_redis_pool()
    await dispose_engine()
    logger.info("application.shutdown_complete")


def _error_body(code: str, message: str, details: Optional[Dict] = None) -> Dict:
    return {"code": code, "message": message, "details": details or {}}


def _error_field(loc) -> str:
    return ".".join(str(part) for part in loc if part not in ("body", "query", "path")) or "request"


async def api_exception_handler(request: Request, exc: BaseAPIException):
    logger.warning(
        "api.exception",
        status_code=exc.status_code,
        code=exc.code,
        path=request.url.path,
        method=request.method,
    )

    headers = None
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers = {
            "Retry-After": str(exc.retry_after),
            "X-RateLimit-Limit": str(exc.details.get("limit", settings.create_rate_limit)),
            "X-RateLimit-Remaining": "0",
        }
        if "reset_at" in exc.details:
            headers["X-RateLimit-Reset"] = str(exc.details["reset_at"])
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters, reported in the same shape as rule violations."""
    errors = [
        {"field": _error_field(error.get("loc", ())), "message": error.get("msg", "Invalid value")}
        for error in exc.errors()
    ]
    logger.warning("validation.error", path=request.url.path, method=request.method, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("validation_error", "Request validation failed", {"errors": errors}),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    error_id = f"err_{uuid.uuid4().hex[:12]}"
    logger.error(
        "unhandled.exception",
        error_id=error_id,
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    message = f"Internal server error: {exc}" if settings.is_development else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("internal_error", message, {"error_id": error_id}),
        headers={"X-Error-ID": error_id},
    )


def create_app() -> FastAPI:
    docs_enabled = not settings.is_production
    application = FastAPI(
        title="Buyer Leads API",
        version=__version__,
        description="Capture, browse, edit and bulk import/export buyer leads",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
        lifespan=lifespan,
    )

    # Last added runs first: CORS, gzip, request id, logging, auth
    application.add_middleware(AuthMiddleware)
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(RequestIdMiddleware)
    application.add_middleware(GZipMiddleware, minimum_size=1000)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins(),
        allow_credentials=True,
        allow_methods=settings.methods(),
        allow_headers=settings.headers(),
        expose_headers=["X-Request-ID", "X-Response-Time", "Retry-After"],
    )

    application.add_exception_handler(BaseAPIException, api_exception_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    application.add_exception_handler(Exception, unhandled_exception_handler)

    for router in (health_router, auth_router, leads_router):
        application.include_router(router, prefix=settings.api_prefix)

    if not settings.is_testing:
        Instrumentator().instrument(application).expose(application, endpoint="/metrics", include_in_schema=False)

    @application.get("/", include_in_schema=False)
    async def root():
        return {
            "name": application.title,
            "version": application.version,
            "environment": settings.environment,
            "health": f"{settings.api_prefix}/health",
        }

    return application


app = create_app()
logger.info("application.configured", environment=settings.environment)
