# buyer_leads/core/__init__.py
"""
Core package for configuration, logging, and shared errors.
"""

from buyer_leads.core.config import Settings, settings
from buyer_leads.core.logging import configure_structlog, get_structlog_logger

__all__ = [
    "Settings",
    "settings",
    "configure_structlog",
    "get_structlog_logger",
]
