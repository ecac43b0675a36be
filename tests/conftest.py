"""
conftest.py — Shared Test Fixtures for Stack Tracker

Provides an in-memory SQLite database, a FastAPI TestClient bound to it,
catalog/customer factory fixtures, and a fake ConnectWise client.

Business Rules:
- All tests run against an isolated in-memory DB
- No test talks to a real ConnectWise site
- The sync guard and progress register are cleared around every test

Called by: all test files via pytest autodiscovery
Depends on: stacktracker.models (Base), stacktracker.database (get_db)
"""

import os
os.environ["TESTING"] = "1"  # Must be set before importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stacktracker.connectors.connectwise import CWCompany, CWContact
from stacktracker.models import (
    Base,
    Baseline,
    Category,
    ConnectwiseSettings,
    ConnectwiseSkuMapping,
    ConnectwiseTypeMapping,
    Customer,
    Tool,
)
from stacktracker.services.connectwise_sync import sync_register

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clear_sync_register():
    sync_register.release()
    sync_register.reset()
    yield
    sync_register.release()
    sync_register.reset()


@pytest.fixture()
def client(db_session: Session) -> TestClient:
    """FastAPI TestClient with get_db overridden to the test session."""
    from stacktracker.database import get_db
    from stacktracker.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def catalog(db_session: Session) -> dict:
    """Two categories, four tools, one baseline.

    Security: t1 (required), t2 (required)
    Backup:   t3 (required), t4 (optional)
    """
    security = Category(id="c-sec", name="Security", sort_order=1)
    backup = Category(id="c-bak", name="Backup", sort_order=2)
    db_session.add_all([security, backup])
    db_session.flush()
    tools = [
        Tool(id="t1", name="SentinelOne", vendor="SentinelOne", category_id="c-sec", tags=["EDR"]),
        Tool(id="t2", name="DNSFilter", vendor="DNSFilter", category_id="c-sec", tags=[]),
        Tool(id="t3", name="Datto BCDR", vendor="Datto", category_id="c-bak", tags=[]),
        Tool(id="t4", name="Veeam", vendor="Veeam", category_id="c-bak", tags=[]),
    ]
    db_session.add_all(tools)
    baseline = Baseline(
        id="b-std",
        name="SMB Standard",
        description="Core stack",
        required_tool_ids=["t1", "t2", "t3"],
        optional_tool_ids=["t4"],
    )
    db_session.add(baseline)
    db_session.commit()
    return {"categories": [security, backup], "tools": tools, "baseline": baseline}


@pytest.fixture()
def customer(db_session: Session, catalog) -> Customer:
    c = Customer(
        id="cust-1",
        name="Acme Dental",
        service_tiers=["MSP"],
        current_tool_ids=["t1"],
        baseline_id="b-std",
    )
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture()
def cw_settings(db_session: Session, catalog) -> ConnectwiseSettings:
    row = ConnectwiseSettings(
        company_id="coretech",
        public_key="pub",
        private_key="priv-secret",
        site_url="na.myconnectwise.net",
        client_id="client-123",
        enabled=True,
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture()
def cw_mappings(db_session: Session, catalog) -> None:
    """'Managed Client' imports, 'Prospect' does not, SEN-CYL-PRO → t1."""
    db_session.add_all([
        ConnectwiseTypeMapping(
            external_type_name="Managed Client",
            baseline_id="b-std",
            service_tiers=["MSP"],
            should_import=True,
        ),
        ConnectwiseTypeMapping(
            external_type_name="Prospect",
            service_tiers=["Essentials"],
            should_import=False,
        ),
        ConnectwiseSkuMapping(sku="SEN-CYL-PRO", description="SentinelOne Complete", tool_id="t1"),
        ConnectwiseSkuMapping(sku="DNS-FLT", description="DNSFilter", tool_id="t2"),
        ConnectwiseSkuMapping(sku="UNMAPPED-SKU", description="No tool yet", tool_id=None),
    ])
    db_session.commit()


# ── Fake ConnectWise client ──────────────────────────────────────────


def make_company(cid: int, name: str, types=("Managed Client",), contact_id=None, **extra) -> CWCompany:
    data = {
        "id": cid,
        "identifier": name.replace(" ", ""),
        "name": name,
        "types": [{"id": i, "name": t} for i, t in enumerate(types, start=1)],
    }
    if contact_id is not None:
        data["defaultContact"] = {"id": contact_id, "name": "Contact"}
    data.update(extra)
    return CWCompany.model_validate(data)


class FakeConnectWise:
    """Async stand-in for ConnectWiseClient, driven by plain dicts."""

    def __init__(self, companies=None, skus=None, contacts=None, connection_ok=True,
                 fail_contacts=(), fail_companies=None, fail_skus=()):
        self.companies = list(companies or [])
        self.skus = dict(skus or {})
        self.contacts = dict(contacts or {})
        self.connection_ok = connection_ok
        self.fail_contacts = set(fail_contacts)
        self.fail_companies = fail_companies
        self.fail_skus = set(fail_skus)
        self.contact_calls = 0

    async def test_connection(self):
        if self.connection_ok:
            return {"success": True, "message": "Connection successful"}
        return {"success": False, "message": "ConnectWise API error: 401 - Unauthorized"}

    async def get_all_companies(self, conditions=None, on_progress=None):
        if self.fail_companies:
            raise self.fail_companies
        if on_progress:
            on_progress(len(self.companies), len(self.companies))
        return list(self.companies)

    async def get_company_contact(self, contact_id):
        self.contact_calls += 1
        if contact_id in self.fail_contacts:
            raise RuntimeError("contact lookup timed out")
        return CWContact.model_validate(self.contacts[contact_id])

    async def get_company_product_skus(self, company_id, warnings=None):
        if company_id in self.fail_skus:
            raise RuntimeError("agreements endpoint returned 500")
        return list(self.skus.get(company_id, []))


@pytest.fixture()
def fake_cw():
    """The FakeConnectWise class, for tests to instantiate per scenario."""
    return FakeConnectWise


@pytest.fixture()
def company_factory():
    return make_company
