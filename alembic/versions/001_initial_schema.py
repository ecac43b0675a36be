"""initial schema: catalog, customers, ConnectWise integration, sync log

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

For databases already built by startup create_all: run `alembic stamp 001_initial`.
For new databases: run `alembic upgrade head`.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column("id", sa.String(36), primary_key=True)


def upgrade() -> None:
    op.create_table(
        "categories",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "tools",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("vendor", sa.String(255)),
        sa.Column(
            "category_id", sa.String(36),
            sa.ForeignKey("categories.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("tags", sa.JSON()),
    )
    op.create_index("ix_tools_category", "tools", ["category_id"])

    op.create_table(
        "baselines",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("required_tool_ids", sa.JSON(), nullable=False),
        sa.Column("optional_tool_ids", sa.JSON(), nullable=False),
    )

    op.create_table(
        "customers",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("address", sa.Text()),
        sa.Column("primary_contact_name", sa.String(255)),
        sa.Column("customer_phone", sa.String(100)),
        sa.Column("contact_phone", sa.String(100)),
        sa.Column("contact_email", sa.String(255)),
        sa.Column("service_tiers", sa.JSON(), nullable=False),
        sa.Column("current_tool_ids", sa.JSON(), nullable=False),
        sa.Column(
            "baseline_id", sa.String(36),
            sa.ForeignKey("baselines.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("external_company_id", sa.Integer(), unique=True),
        sa.Column("last_external_sync_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_index("ix_customers_baseline", "customers", ["baseline_id"])
    op.create_index("ix_customers_name", "customers", ["name"])

    op.create_table(
        "connectwise_settings",
        _id(),
        sa.Column("company_id", sa.String(255), nullable=False),
        sa.Column("public_key", sa.String(255), nullable=False),
        sa.Column("private_key", sa.Text()),
        sa.Column("site_url", sa.String(500), nullable=False),
        sa.Column("client_id", sa.String(255), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "default_baseline_id", sa.String(36),
            sa.ForeignKey("baselines.id", ondelete="SET NULL"),
        ),
        sa.Column("last_sync_at", sa.DateTime()),
        sa.Column("last_sync_status", sa.String(50)),
        sa.Column("last_sync_message", sa.Text()),
        sa.Column("created_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime()),
    )
    op.create_table(
        "connectwise_type_mappings",
        _id(),
        sa.Column("external_type_name", sa.String(255), nullable=False, unique=True),
        sa.Column(
            "baseline_id", sa.String(36),
            sa.ForeignKey("baselines.id", ondelete="SET NULL"),
        ),
        sa.Column("service_tiers", sa.JSON(), nullable=False),
        sa.Column("should_import", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        "connectwise_sku_mappings",
        _id(),
        sa.Column("sku", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("tool_id", sa.String(36), sa.ForeignKey("tools.id", ondelete="SET NULL")),
    )

    op.create_table(
        "sync_logs",
        _id(),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("duration_ms", sa.Integer()),
        sa.Column("companies_found", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("companies_imported", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("companies_updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("companies_skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("agreements_processed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tools_activated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", sa.JSON()),
        sa.Column("warnings", sa.JSON()),
    )
    op.create_index("ix_sync_source_time", "sync_logs", ["source", "started_at"])


def downgrade() -> None:
    """Drop everything. Dev/test environments only."""
    for table in (
        "sync_logs",
        "connectwise_sku_mappings",
        "connectwise_type_mappings",
        "connectwise_settings",
        "customers",
        "baselines",
        "tools",
        "categories",
    ):
        op.drop_table(table)
