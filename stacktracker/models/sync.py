"""Sync log — one append-only row per ConnectWise sync run."""

from sqlalchemy import JSON, Column, Index, Integer, String

from ..database import UTCDateTime
from .base import Base, new_id


class SyncLog(Base):
    __tablename__ = "sync_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    source = Column(String(50), nullable=False, default="connectwise")
    status = Column(String(50), nullable=False)
    started_at = Column(UTCDateTime, nullable=False)
    completed_at = Column(UTCDateTime)
    duration_ms = Column(Integer)

    companies_found = Column(Integer, nullable=False, default=0)
    companies_imported = Column(Integer, nullable=False, default=0)
    companies_updated = Column(Integer, nullable=False, default=0)
    companies_skipped = Column(Integer, nullable=False, default=0)
    agreements_processed = Column(Integer, nullable=False, default=0)
    tools_activated = Column(Integer, nullable=False, default=0)

    errors = Column(JSON, default=list)
    warnings = Column(JSON, default=list)

    __table_args__ = (Index("ix_sync_source_time", "source", "started_at"),)
