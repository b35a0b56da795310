"""Field and cross-field rules for buyer leads.

Rules are small pure functions over a flat mapping of wire field names to
values. Every rule runs on every candidate and the violations accumulate, so a
caller always sees the complete set of problems rather than just the first.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from buyer_leads.models.lead import (
    BHK_OPTIONS,
    CITIES,
    LEAD_FIELDS,
    PROPERTY_TYPES,
    PURPOSES,
    RESIDENTIAL_TYPES,
    SOURCES,
    STATUSES,
    TIMELINES,
)

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_PHONE_PATTERN = re.compile(r"^\d{10,15}$")

REQUIRED_FIELDS = ("fullName", "phone", "city", "propertyType", "purpose", "timeline", "source")

ENUM_FIELDS: Dict[str, tuple] = {
    "city": CITIES,
    "propertyType": PROPERTY_TYPES,
    "purpose": PURPOSES,
    "timeline": TIMELINES,
    "source": SOURCES,
    "status": STATUSES,
    "bhk": BHK_OPTIONS,
}

# Optional string fields where an empty string means "not provided".
_BLANK_AS_ABSENT = ("email", "notes", "bhk")

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 80
NOTES_MAX_LENGTH = 1000
EMAIL_MAX_LENGTH = 254
# Largest value the 32-bit budget columns hold.
BUDGET_MAX = 2_147_483_647


@dataclass(frozen=True)
class Violation:
    field: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass
class ValidationResult:
    data: Dict[str, Any]
    violations: List[Violation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.violations


Rule = Callable[[Mapping[str, Any]], Iterable[Violation]]


def normalize_candidate(candidate: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep known fields, trim strings and fold blanks into ``None``."""
    normalized: Dict[str, Any] = {}
    for name in LEAD_FIELDS:
        if name not in candidate:
            continue
        value = candidate[name]

        if isinstance(value, str):
            value = value.strip()
        if name in _BLANK_AS_ABSENT and value == "":
            value = None
        if name == "bhk" and isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if name == "tags":
            if value is None:
                value = []
            elif isinstance(value, (list, tuple)):
                value = [tag.strip() if isinstance(tag, str) else tag for tag in value]
        if name == "status" and value in (None, ""):
            # Absent status means "keep current" on update and "New" on create.
            continue

        normalized[name] = value
    return normalized


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def required_fields(values: Mapping[str, Any]) -> Iterable[Violation]:
    for name in REQUIRED_FIELDS:
        if _is_blank(values.get(name)):
            yield Violation(name, f"{name} is required")


def full_name_length(values: Mapping[str, Any]) -> Iterable[Violation]:
    name = values.get("fullName")
    if _is_blank(name):
        return
    if not isinstance(name, str):
        yield Violation("fullName", "Full name must be text")
    elif not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        yield Violation(
            "fullName",
            f"Full name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters",
        )


def email_format(values: Mapping[str, Any]) -> Iterable[Violation]:
    email = values.get("email")
    if email is None:
        return
    if not isinstance(email, str) or not _EMAIL_PATTERN.match(email):
        yield Violation("email", "Invalid email address")
    elif len(email) > EMAIL_MAX_LENGTH:
        yield Violation("email", f"Email must be at most {EMAIL_MAX_LENGTH} characters")


def phone_format(values: Mapping[str, Any]) -> Iterable[Violation]:
    phone = values.get("phone")
    if _is_blank(phone):
        return
    if not isinstance(phone, str) or not _PHONE_PATTERN.match(phone):
        yield Violation("phone", "Phone must be 10-15 digits")


def budget_values(values: Mapping[str, Any]) -> Iterable[Violation]:
    for name in ("budgetMin", "budgetMax"):
        budget = values.get(name)
        if budget is None:
            continue
        if not _is_int(budget) or budget < 0:
            yield Violation(name, "Budget must be a non-negative whole number")
        elif budget > BUDGET_MAX:
            yield Violation(name, f"Budget must be at most {BUDGET_MAX}")


def notes_length(values: Mapping[str, Any]) -> Iterable[Violation]:
    notes = values.get("notes")
    if notes is None:
        return
    if not isinstance(notes, str):
        yield Violation("notes", "Notes must be text")
    elif len(notes) > NOTES_MAX_LENGTH:
        yield Violation("notes", f"Notes must be at most {NOTES_MAX_LENGTH} characters")


def tag_values(values: Mapping[str, Any]) -> Iterable[Violation]:
    tags = values.get("tags")
    if tags is None:
        return
    if not isinstance(tags, list):
        yield Violation("tags", "Tags must be a list of text values")
        return
    for index, tag in enumerate(tags):
        if not isinstance(tag, str) or not tag:
            yield Violation(f"tags.{index}", "Tags cannot be empty")


def bhk_matches_property_type(values: Mapping[str, Any]) -> Iterable[Violation]:
    property_type = values.get("propertyType")
    bhk = values.get("bhk")
    if property_type in RESIDENTIAL_TYPES and bhk is None:
        yield Violation("bhk", "BHK is required for Apartment and Villa properties")
    elif property_type in PROPERTY_TYPES and property_type not in RESIDENTIAL_TYPES and bhk is not None:
        yield Violation("bhk", f"BHK must be empty for {property_type} properties")


def budget_range(values: Mapping[str, Any]) -> Iterable[Violation]:
    low, high = values.get("budgetMin"), values.get("budgetMax")
    if _is_int(low) and _is_int(high) and high < low:
        yield Violation("budgetMax", "Maximum budget must be greater than or equal to minimum budget")


def enum_membership(values: Mapping[str, Any]) -> Iterable[Violation]:
    for name, choices in ENUM_FIELDS.items():
        value = values.get(name)
        if _is_blank(value):
            continue
        if value not in choices:
            yield Violation(name, f"Invalid {name}; expected one of: {', '.join(choices)}")


# Evaluation order is also reporting order.
RULES: List[Rule] = [
    required_fields,
    full_name_length,
    email_format,
    phone_format,
    budget_values,
    notes_length,
    tag_values,
    bhk_matches_property_type,
    budget_range,
    enum_membership,
]


def validate_candidate(
    candidate: Mapping[str, Any],
    *,
    current: Optional[Mapping[str, Any]] = None,
) -> ValidationResult:
    """Validate a candidate lead.

    With ``current`` (a partial update) the supplied fields are laid over the
    stored values so conditional and cross-field rules see the resulting
    record, while ``data`` still holds only the supplied fields.
    """
    data = normalize_candidate(candidate)
    merged = dict(current or {})
    merged.update(data)

    violations: List[Violation] = []
    for rule in RULES:
        violations.extend(rule(merged))

    return ValidationResult(data=data, violations=violations)
