from __future__ import annotations

from typing import Any, Dict, Mapping

FieldChange = Dict[str, Any]


def compute_diff(previous: Mapping[str, Any], incoming: Mapping[str, Any]) -> Dict[str, FieldChange]:
    """Field-level changes from ``previous`` to ``incoming``.

    Only keys present in ``incoming`` are compared; anything left out of a
    partial update is untouched and never shows up in the result.
    """
    changes: Dict[str, FieldChange] = {}
    for name, new in incoming.items():
        old = previous.get(name)
        if old != new:
            changes[name] = {"old": old, "new": new}
    return changes


def creation_diff(values: Mapping[str, Any]) -> Dict[str, FieldChange]:
    """History diff for a newly created lead: every provided field, from nothing."""
    return {
        name: {"old": None, "new": value}
        for name, value in values.items()
        if value is not None and value != []
    }
