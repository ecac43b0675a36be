"""
schemas/customers.py — Pydantic models for customer endpoints

Business Rules:
- Customer name is required and non-empty
- service_tiers is a non-empty subset of Essentials, MSP, Break-Fix
- current_tool_ids is de-duplicated, first occurrence wins
- Blank optional text fields are stored as null

Called by: routers/customers.py
Depends on: pydantic, models.customers (SERVICE_TIERS)
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field

from ..utils import uniq
from .catalog import Name

ServiceTier = Literal["Essentials", "MSP", "Break-Fix"]


def _tiers_required(v: list[str]) -> list[str]:
    v = uniq(v)
    if not v:
        raise ValueError("At least one service tier is required")
    return v


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v.strip() if isinstance(v, str) else v


ServiceTiers = Annotated[list[ServiceTier], AfterValidator(_tiers_required)]
ToolIds = Annotated[list[str], AfterValidator(uniq)]
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]


class CustomerCreate(BaseModel):
    name: Name
    address: OptionalText = None
    primary_contact_name: OptionalText = None
    customer_phone: OptionalText = None
    contact_phone: OptionalText = None
    contact_email: OptionalText = None
    service_tiers: ServiceTiers = Field(default_factory=lambda: ["Essentials"])
    current_tool_ids: ToolIds = Field(default_factory=list)
    baseline_id: str


class CustomerUpdate(BaseModel):
    name: Name | None = None
    address: OptionalText = None
    primary_contact_name: OptionalText = None
    customer_phone: OptionalText = None
    contact_phone: OptionalText = None
    contact_email: OptionalText = None
    service_tiers: ServiceTiers | None = None
    current_tool_ids: ToolIds | None = None
    baseline_id: str | None = None


class CustomerBulkCreate(BaseModel):
    customers: list[CustomerCreate] = Field(..., min_length=1, max_length=5000)


class CustomerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: str | None = None
    primary_contact_name: str | None = None
    customer_phone: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    service_tiers: list[str]
    current_tool_ids: list[str]
    baseline_id: str
    external_company_id: int | None = None
    last_external_sync_at: datetime | None = None
