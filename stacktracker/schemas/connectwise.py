"""
schemas/connectwise.py — Pydantic models for the ConnectWise integration

Business Rules:
- Private key is write-only: responses carry has_private_key, never the key
- Omitted or blank private_key means "keep the stored key"; the router turns
  it into the KEEP_SECRET sentinel before it reaches the service layer
- External type names and SKUs are trimmed and must be non-empty
- Type mappings need at least one service tier

Called by: routers/connectwise.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from .catalog import Name
from .customers import ServiceTiers


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


BlankAsNone = Annotated[str | None, BeforeValidator(_blank_to_none)]


# ── Settings ─────────────────────────────────────────────────────────


class ConnectwiseCredentialsIn(BaseModel):
    company_id: Name
    public_key: Name
    private_key: BlankAsNone = None
    site_url: Name
    client_id: Name


class ConnectwiseSettingsSave(ConnectwiseCredentialsIn):
    enabled: bool = False
    default_baseline_id: BlankAsNone = None


class ConnectwiseSettingsOut(BaseModel):
    id: str
    company_id: str
    public_key: str
    site_url: str
    client_id: str
    enabled: bool
    has_private_key: bool
    default_baseline_id: str | None = None
    last_sync_at: datetime | None = None
    last_sync_status: str | None = None
    last_sync_message: str | None = None


# ── Type mappings ────────────────────────────────────────────────────


class TypeMappingCreate(BaseModel):
    external_type_name: Name
    baseline_id: BlankAsNone = None
    service_tiers: ServiceTiers = Field(default_factory=lambda: ["Essentials"])
    should_import: bool = True


class TypeMappingUpdate(BaseModel):
    external_type_name: Name | None = None
    baseline_id: BlankAsNone = None
    service_tiers: ServiceTiers | None = None
    should_import: bool | None = None


class TypeMappingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    external_type_name: str
    baseline_id: str | None = None
    service_tiers: list[str]
    should_import: bool


# ── SKU mappings ─────────────────────────────────────────────────────


class SkuMappingCreate(BaseModel):
    sku: Name
    description: str | None = None
    tool_id: BlankAsNone = None


class SkuMappingUpdate(BaseModel):
    sku: Name | None = None
    description: str | None = None
    tool_id: BlankAsNone = None


class SkuMappingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sku: str
    description: str | None = None
    tool_id: str | None = None


# ── Sync ─────────────────────────────────────────────────────────────


class SyncLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: int | None = None
    companies_found: int
    companies_imported: int
    companies_updated: int
    companies_skipped: int
    agreements_processed: int
    tools_activated: int
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @field_validator("errors", "warnings", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return v or []
