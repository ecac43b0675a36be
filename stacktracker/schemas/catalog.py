"""
schemas/catalog.py — Pydantic models for categories, tools, and baselines

Business Rules:
- Names are required and non-empty
- Required/optional overlap is checked by the router against the merged record
- Tool id lists are de-duplicated, first occurrence wins

Called by: routers/catalog.py
Depends on: pydantic
"""

from __future__ import annotations

from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from ..utils import uniq


def _name_required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name is required")
    return v


Name = Annotated[str, AfterValidator(_name_required)]
ToolIds = Annotated[list[str], AfterValidator(uniq)]


# ── Categories ───────────────────────────────────────────────────────


class CategoryCreate(BaseModel):
    name: Name
    description: str = ""
    sort_order: int = 0


class CategoryUpdate(BaseModel):
    name: Name | None = None
    description: str | None = None
    sort_order: int | None = None


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    sort_order: int


# ── Tools ────────────────────────────────────────────────────────────


class ToolCreate(BaseModel):
    name: Name
    vendor: str | None = None
    category_id: str
    tags: list[str] = Field(default_factory=list)


class ToolUpdate(BaseModel):
    name: Name | None = None
    vendor: str | None = None
    category_id: str | None = None
    tags: list[str] | None = None


class ToolOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    vendor: str | None = None
    category_id: str
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, v):
        return v or []


# ── Baselines ────────────────────────────────────────────────────────


class BaselineCreate(BaseModel):
    name: Name
    description: str = ""
    required_tool_ids: ToolIds = Field(default_factory=list)
    optional_tool_ids: ToolIds = Field(default_factory=list)


class BaselineUpdate(BaseModel):
    name: Name | None = None
    description: str | None = None
    required_tool_ids: ToolIds | None = None
    optional_tool_ids: ToolIds | None = None


class BaselineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    required_tool_ids: list[str]
    optional_tool_ids: list[str]
