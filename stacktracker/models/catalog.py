"""Catalog models — Categories, Tools, and Baselines."""

from sqlalchemy import JSON, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import Base, new_id


class Category(Base):
    """Groups tools for display and coverage rollups."""

    __tablename__ = "categories"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    sort_order = Column(Integer, nullable=False, default=0)

    tools = relationship(
        "Tool",
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Tool(Base):
    __tablename__ = "tools"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    vendor = Column(String(255))
    category_id = Column(
        String(36), ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    tags = Column(JSON, default=list)

    category = relationship("Category", back_populates="tools")

    __table_args__ = (Index("ix_tools_category", "category_id"),)


class Baseline(Base):
    """Named target stack: required tools plus optional upsell tools.

    required_tool_ids and optional_tool_ids are disjoint; the API layer
    rejects payloads that put a tool in both.
    """

    __tablename__ = "baselines"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    required_tool_ids = Column(JSON, nullable=False, default=list)
    optional_tool_ids = Column(JSON, nullable=False, default=list)
