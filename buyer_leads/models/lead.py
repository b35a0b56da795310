# buyer_leads/models/lead.py
from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from buyer_leads.db.base import Base, UUIDMixin, as_utc, utcnow

CITIES = ("Chandigarh", "Mohali", "Zirakpur", "Panchkula", "Other")
PROPERTY_TYPES = ("Apartment", "Villa", "Plot", "Office", "Retail")
RESIDENTIAL_TYPES = ("Apartment", "Villa")
BHK_OPTIONS = ("1", "2", "3", "4", "Studio")
PURPOSES = ("Buy", "Rent")
TIMELINES = ("0-3m", "3-6m", ">6m", "Exploring")
SOURCES = ("Website", "Referral", "Walk-in", "Call", "Other")
STATUSES = ("New", "Qualified", "Contacted", "Visited", "Negotiation", "Converted", "Dropped")
DEFAULT_STATUS = "New"

# Wire (camelCase) field name -> mapped attribute, for every client-writable field.
LEAD_FIELDS: Dict[str, str] = {
    "fullName": "full_name",
    "email": "email",
    "phone": "phone",
    "city": "city",
    "propertyType": "property_type",
    "bhk": "bhk",
    "purpose": "purpose",
    "budgetMin": "budget_min",
    "budgetMax": "budget_max",
    "timeline": "timeline",
    "source": "source",
    "status": "status",
    "notes": "notes",
    "tags": "tags",
}


class Lead(UUIDMixin, Base):
    __tablename__ = "leads"

    full_name = Column(String(80), nullable=False)
    email = Column(String(254), nullable=True)
    phone = Column(String(15), nullable=False)
    city = Column(Enum(*CITIES, name="lead_city"), nullable=False)
    property_type = Column(Enum(*PROPERTY_TYPES, name="lead_property_type"), nullable=False)
    bhk = Column(Enum(*BHK_OPTIONS, name="lead_bhk"), nullable=True)
    purpose = Column(Enum(*PURPOSES, name="lead_purpose"), nullable=False)
    budget_min = Column(Integer, nullable=True)
    budget_max = Column(Integer, nullable=True)
    timeline = Column(Enum(*TIMELINES, name="lead_timeline"), nullable=False)
    source = Column(Enum(*SOURCES, name="lead_source"), nullable=False)
    status = Column(Enum(*STATUSES, name="lead_status"), nullable=False, default=DEFAULT_STATUS)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)

    owner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    # Server-assigned; updated_at doubles as the optimistic-concurrency token.
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    history = relationship(
        "LeadHistory",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LeadHistory.changed_at",
    )

    __table_args__ = (
        Index("idx_leads_updated_at", "updated_at"),
        Index("idx_leads_owner_id", "owner_id"),
        Index("idx_leads_status", "status"),
        Index("idx_leads_city", "city"),
        Index("idx_leads_phone", "phone"),
        CheckConstraint("budget_min IS NULL OR budget_min >= 0", name="budget_min_non_negative"),
        CheckConstraint(
            "budget_min IS NULL OR budget_max IS NULL OR budget_max >= budget_min",
            name="budget_range",
        ),
    )

    def field_values(self) -> Dict[str, Any]:
        """Client-writable fields keyed by their wire names."""
        values = {}
        for wire_name, attr in LEAD_FIELDS.items():
            value = getattr(self, attr)
            if wire_name == "tags":
                value = list(value or [])
            values[wire_name] = value
        return values

    def to_wire(self) -> Dict[str, Any]:
        data = {"id": self.id}
        data.update(self.field_values())
        data.update(
            ownerId=self.owner_id,
            createdAt=as_utc(self.created_at),
            updatedAt=as_utc(self.updated_at),
        )
        return data
