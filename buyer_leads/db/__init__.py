# buyer_leads/db/__init__.py
"""
Database package for SQLAlchemy setup, session management, and base models.
"""

from buyer_leads.db.base import Base, UUIDMixin, as_utc, utcnow
from buyer_leads.db.session import create_database_engine, get_session, init_models

__all__ = [
    "Base",
    "UUIDMixin",
    "as_utc",
    "utcnow",
    "create_database_engine",
    "get_session",
    "init_models",
]
