# buyer_leads/models/history.py
from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship

from buyer_leads.db.base import Base, UUIDMixin, as_utc, utcnow

HISTORY_ACTIONS = ("created", "updated", "imported")


class LeadHistory(UUIDMixin, Base):
    """Append-only change log; rows disappear only with their lead."""

    __tablename__ = "lead_history"

    lead_id = Column(Uuid(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    changed_by = Column(Uuid(as_uuid=True), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    action = Column(Enum(*HISTORY_ACTIONS, name="lead_history_action"), nullable=False)
    diff = Column(JSON, nullable=False)

    lead = relationship("Lead", back_populates="history")

    __table_args__ = (
        Index("idx_lead_history_lead_changed", "lead_id", "changed_at"),
    )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "leadId": self.lead_id,
            "changedBy": self.changed_by,
            "changedAt": as_utc(self.changed_at),
            "action": self.action,
            "diff": self.diff,
        }
