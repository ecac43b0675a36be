"""ConnectWise integration models — settings, type mappings, SKU mappings."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, String, Text

from ..database import UTCDateTime
from ..utils.encrypted_type import EncryptedText
from .base import Base, new_id, utcnow


class ConnectwiseSettings(Base):
    """Credentials and last-sync status. At most one row exists.

    private_key is encrypted at rest and never serialized back to clients;
    the API exposes only has_private_key.
    """

    __tablename__ = "connectwise_settings"
    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(255), nullable=False)
    public_key = Column(String(255), nullable=False)
    private_key = Column(EncryptedText)
    site_url = Column(String(500), nullable=False)
    client_id = Column(String(255), nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    default_baseline_id = Column(
        String(36), ForeignKey("baselines.id", ondelete="SET NULL")
    )

    last_sync_at = Column(UTCDateTime)
    last_sync_status = Column(String(50))
    last_sync_message = Column(Text)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)


class ConnectwiseTypeMapping(Base):
    """ConnectWise company type → baseline, service tiers, import flag."""

    __tablename__ = "connectwise_type_mappings"
    id = Column(String(36), primary_key=True, default=new_id)
    external_type_name = Column(String(255), nullable=False, unique=True)
    baseline_id = Column(String(36), ForeignKey("baselines.id", ondelete="SET NULL"))
    service_tiers = Column(JSON, nullable=False, default=lambda: ["Essentials"])
    should_import = Column(Boolean, nullable=False, default=True)


class ConnectwiseSkuMapping(Base):
    """ConnectWise product identifier on an agreement addition → Tool."""

    __tablename__ = "connectwise_sku_mappings"
    id = Column(String(36), primary_key=True, default=new_id)
    sku = Column(String(255), nullable=False, unique=True)
    description = Column(Text)
    tool_id = Column(String(36), ForeignKey("tools.id", ondelete="SET NULL"))
