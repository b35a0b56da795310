from sqlalchemy import Column, DateTime, String

from buyer_leads.db.base import Base, UUIDMixin, utcnow


class User(UUIDMixin, Base):
    __tablename__ = "users"

    email = Column(String(254), nullable=False, unique=True)
    name = Column(String(120), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
