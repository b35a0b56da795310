# buyer_leads/services/__init__.py
"""
Business logic services organized by domain functionality.
"""

# Import key service functions and classes for convenient access
from buyer_leads.services.auth import Caller, get_caller, require_caller
from buyer_leads.services.diff import compute_diff, creation_diff
from buyer_leads.services.lead_import import ImportResult, ImportRowError, LeadImporter, validate_rows
from buyer_leads.services.lead_query import LeadPage, LeadQuery, build_filter, build_sort
from buyer_leads.services.lead_writer import LeadDetail, LeadWriter
from buyer_leads.services.store import LeadFilter, LeadSort, SqlStorage, Storage
from buyer_leads.services.validation import ValidationResult, Violation, validate_candidate

__all__ = [
    # Identity
    "Caller",
    "get_caller",
    "require_caller",
    # Validation and diff
    "ValidationResult",
    "Violation",
    "validate_candidate",
    "compute_diff",
    "creation_diff",
    # Store gateway
    "LeadFilter",
    "LeadSort",
    "SqlStorage",
    "Storage",
    # Pipelines
    "LeadDetail",
    "LeadWriter",
    "ImportResult",
    "ImportRowError",
    "LeadImporter",
    "validate_rows",
    "LeadPage",
    "LeadQuery",
    "build_filter",
    "build_sort",
]
