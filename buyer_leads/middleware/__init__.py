"""
HTTP middleware: request ids, request logging, bearer-token identity.
"""

from buyer_leads.middleware.auth import AuthMiddleware, TokenManager, issue_user_token
from buyer_leads.middleware.logging import LoggingMiddleware
from buyer_leads.middleware.request_id import RequestIdMiddleware

__all__ = [
    "AuthMiddleware",
    "LoggingMiddleware",
    "RequestIdMiddleware",
    "TokenManager",
    "issue_user_token",
]
