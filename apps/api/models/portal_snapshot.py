"""PortalSnapshot model: key-value store for the account and invoice documents."""

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.sql import func

from database import Base


class PortalSnapshot(Base):
    """One persisted document (``accounts`` or ``invoices``) as an ordered JSON list."""

    __tablename__ = "portal_snapshots"

    key = Column(String, primary_key=True)
    payload = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
