"""
API route handlers organized by domain.
"""

from buyer_leads.routes.auth import router as auth_router
from buyer_leads.routes.health import router as health_router
from buyer_leads.routes.leads import router as leads_router

__all__ = [
    "auth_router",
    "health_router",
    "leads_router",
]
