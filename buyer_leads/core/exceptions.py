from __future__ import annotations

from typing import Any, Dict, Optional


class BaseAPIException(Exception):
    """Base exception for all API errors."""

    status_code: int = 500
    default_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class AuthenticationError(BaseAPIException):
    """No (valid) caller identity."""
    status_code = 401
    default_code = "unauthorized"

    def __init__(self, message: str = "Authentication required", **kwargs):
        super().__init__(message, **kwargs)


class AuthorizationError(BaseAPIException):
    """Caller is not allowed to touch the resource."""
    status_code = 403
    default_code = "forbidden"

    def __init__(self, message: str = "Forbidden", **kwargs):
        super().__init__(message, **kwargs)


class NotFoundError(BaseAPIException):
    """Resource not found."""
    status_code = 404
    default_code = "not_found"

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, **kwargs)


class ValidationError(BaseAPIException):
    """One or more field rules failed; details["errors"] lists every violation."""
    status_code = 422
    default_code = "validation_error"

    def __init__(self, message: str = "Validation error", **kwargs):
        super().__init__(message, **kwargs)

    @property
    def errors(self):
        return self.details.get("errors", [])


class ConflictError(BaseAPIException):
    """Resource conflict."""
    status_code = 409
    default_code = "conflict"

    def __init__(self, message: str = "Resource conflict", **kwargs):
        super().__init__(message, **kwargs)


class ConcurrencyConflictError(ConflictError):
    """The caller's updatedAt token is stale; refetch and retry."""
    default_code = "concurrency_conflict"

    def __init__(self, message: str = "Record was modified by someone else", **kwargs):
        super().__init__(message, **kwargs)


class BusinessRuleError(BaseAPIException):
    """Business rule violation."""
    status_code = 400
    default_code = "bad_request"

    def __init__(self, message: str = "Business rule violation", **kwargs):
        super().__init__(message, **kwargs)


class RateLimitError(BaseAPIException):
    """Rate limit exceeded."""
    status_code = 429
    default_code = "too_many_requests"

    def __init__(self, message: str = "Too many requests", retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class DatabaseError(BaseAPIException):
    """Store-layer failure."""
    status_code = 500
    default_code = "persistence_error"

    def __init__(self, message: str = "Database error", **kwargs):
        super().__init__(message, **kwargs)


class ServiceUnavailableError(BaseAPIException):
    """Service unavailable."""
    status_code = 503
    default_code = "service_unavailable"

    def __init__(self, message: str = "Service unavailable", **kwargs):
        super().__init__(message, **kwargs)
