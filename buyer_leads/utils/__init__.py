"""CSV helpers for lead import and export."""
