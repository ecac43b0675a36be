"""
startup.py — Database Startup Migrations (Idempotent)

Tables and indexes are defined in the ORM models and created via
Base.metadata.create_all(checkfirst=True). This file adds the
PostgreSQL-only CHECK constraints the ORM cannot express portably and
clears the in-process sync register.

Called by: main.py lifespan
Depends on: database.py (engine), models (Base)
"""

import logging
import os

from sqlalchemy import text as sqltext

from .database import _IS_POSTGRES, engine
from .services.connectwise_sync import sync_register

log = logging.getLogger(__name__)


def run_startup_migrations() -> None:
    """Execute all idempotent startup operations. Safe to call on every app boot."""
    sync_register.reset()

    if os.environ.get("TESTING"):
        log.info("TESTING mode, skipping startup migrations")
        return

    from .models import Base
    Base.metadata.create_all(bind=engine, checkfirst=True)
    log.info("ORM schema sync complete (create_all checkfirst=True)")

    if _IS_POSTGRES:
        with engine.connect() as conn:
            _add_check_constraints(conn)

    log.info("Startup migrations complete")


def _exec(conn, stmt: str) -> None:
    """Execute a single DDL statement with rollback on failure."""
    try:
        conn.execute(sqltext(stmt))
        conn.commit()
    except Exception as e:
        log.warning("DDL failed: %s", e)
        conn.rollback()


def _add_check_constraints(conn) -> None:
    """Add CHECK constraints (NOT VALID), so only new inserts/updates are checked."""
    constraints = [
        ("customers", "chk_cust_tiers_nonempty", "json_array_length(service_tiers) > 0"),
        ("connectwise_type_mappings", "chk_cwtm_tiers_nonempty", "json_array_length(service_tiers) > 0"),
        ("sync_logs", "chk_sync_status", "status IN ('completed','completed_with_errors','error')"),
        ("sync_logs", "chk_sync_counts", "companies_found >= 0 AND companies_skipped >= 0"),
    ]
    for table, name, check in constraints:
        _exec(conn, f"""
            DO $$ BEGIN
                IF NOT EXISTS (
                    SELECT 1 FROM pg_constraint WHERE conname = '{name}'
                ) THEN
                    ALTER TABLE {table} ADD CONSTRAINT {name} CHECK ({check}) NOT VALID;
                END IF;
            END $$;
        """)
