"""Customer model — one managed-services client and its current stack."""

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, String, Text

from ..database import UTCDateTime
from .base import Base, new_id, utcnow

SERVICE_TIERS = ("Essentials", "MSP", "Break-Fix")


class Customer(Base):
    __tablename__ = "customers"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    address = Column(Text)
    primary_contact_name = Column(String(255))
    customer_phone = Column(String(100))
    contact_phone = Column(String(100))
    contact_email = Column(String(255))
    service_tiers = Column(JSON, nullable=False, default=lambda: ["Essentials"])
    current_tool_ids = Column(JSON, nullable=False, default=list)
    baseline_id = Column(
        String(36), ForeignKey("baselines.id", ondelete="RESTRICT"), nullable=False
    )

    # ConnectWise linkage: set once a sync has matched this customer
    external_company_id = Column(Integer, unique=True)
    last_external_sync_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_customers_baseline", "baseline_id"),
        Index("ix_customers_name", "name"),
    )
