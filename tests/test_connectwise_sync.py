"""
test_connectwise_sync.py — Tests for services/connectwise_sync.py

Drives run_sync with a fake ConnectWise client against the in-memory DB.

Called by: pytest
Depends on: stacktracker.services.connectwise_sync, conftest fixtures
"""

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy.exc import DataError

from stacktracker.connectors.connectwise import ConnectWiseApiError
from stacktracker.models import Baseline, ConnectwiseSettings, ConnectwiseTypeMapping, Customer, SyncLog
from stacktracker.services.connectwise_sync import (
    SyncAlreadyRunning,
    SyncState,
    get_sync_progress,
    run_sync,
    sync_register,
)


def _factory(fake):
    return lambda row: fake


def _contact(first, last, email=None, phone=None):
    items = []
    if email:
        items.append({"type": {"id": 1, "name": "Email"}, "value": email, "defaultFlag": True})
    if phone:
        items.append({"type": {"id": 2, "name": "Phone"}, "value": phone})
    return {"id": 1, "firstName": first, "lastName": last, "communicationItems": items}


# ── Happy path ───────────────────────────────────────────────────────


class TestImport:
    @pytest.mark.asyncio
    async def test_imports_new_customer_with_sku_tool(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(
            companies=[company_factory(
                101, "Acme Dental", contact_id=5,
                addressLine1="1 Main St", city="Austin", state="TX", zip="78701",
                phoneNumber="512-555-0100",
            )],
            skus={101: ["SEN-CYL-PRO"]},
            contacts={5: _contact("Dana", "Reyes", email="dana@acme.com", phone="512-555-0199")},
        )
        result = await run_sync(db_session, _factory(fake))

        assert result.success is True
        assert result.companies_found == 1
        assert result.companies_imported == 1
        assert result.tools_activated == 1
        assert result.agreements_processed == 1
        assert result.errors == []

        cust = db_session.query(Customer).filter_by(external_company_id=101).one()
        assert cust.name == "Acme Dental"
        assert cust.current_tool_ids == ["t1"]
        assert cust.baseline_id == "b-std"
        assert cust.service_tiers == ["MSP"]
        assert cust.address == "1 Main St, Austin, TX, 78701"
        assert cust.customer_phone == "512-555-0100"
        assert cust.primary_contact_name == "Dana Reyes"
        assert cust.contact_email == "dana@acme.com"
        assert cust.contact_phone == "512-555-0199"
        assert cust.last_external_sync_at is not None

    @pytest.mark.asyncio
    async def test_unmapped_and_unknown_skus_ignored(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(
            companies=[company_factory(101, "Acme")],
            skus={101: ["UNMAPPED-SKU", "NEVER-SEEN", "DNS-FLT"]},
        )
        result = await run_sync(db_session, _factory(fake))
        assert result.tools_activated == 1
        cust = db_session.query(Customer).filter_by(external_company_id=101).one()
        assert cust.current_tool_ids == ["t2"]

    @pytest.mark.asyncio
    async def test_skipped_when_type_not_importable(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(companies=[
            company_factory(201, "Prospect Co", types=("Prospect",)),
            company_factory(202, "Vendor Co", types=("Vendor",)),
            company_factory(203, "No Types", types=()),
        ])
        result = await run_sync(db_session, _factory(fake))
        assert result.companies_skipped == 3
        assert result.companies_imported == 0
        assert result.success is True
        assert db_session.query(Customer).count() == 0

    @pytest.mark.asyncio
    async def test_first_importable_type_wins(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(companies=[company_factory(301, "Multi", types=("Prospect", "Managed Client"))])
        result = await run_sync(db_session, _factory(fake))
        assert result.companies_imported == 1


# ── Idempotency / monotonicity ───────────────────────────────────────


class TestRepeatRuns:
    @pytest.mark.asyncio
    async def test_second_run_updates_only(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(
            companies=[company_factory(101, "Acme"), company_factory(102, "Bravo")],
            skus={101: ["SEN-CYL-PRO"], 102: ["DNS-FLT"]},
        )
        first = await run_sync(db_session, _factory(fake))
        assert first.companies_imported == 2

        before = {c.external_company_id: list(c.current_tool_ids) for c in db_session.query(Customer).all()}
        second = await run_sync(db_session, _factory(fake))

        assert second.companies_imported == 0
        assert second.companies_updated == 2
        assert db_session.query(Customer).count() == 2
        after = {c.external_company_id: list(c.current_tool_ids) for c in db_session.query(Customer).all()}
        assert after == before

    @pytest.mark.asyncio
    async def test_tools_never_removed(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        db_session.add(Customer(
            id="existing", name="Old Name", baseline_id="b-std",
            service_tiers=["Essentials"], current_tool_ids=["t3", "t4"],
            external_company_id=101,
        ))
        db_session.commit()

        fake = fake_cw(companies=[company_factory(101, "New Name")], skus={101: ["SEN-CYL-PRO"]})
        result = await run_sync(db_session, _factory(fake))

        assert result.companies_updated == 1
        cust = db_session.get(Customer, "existing")
        assert cust.name == "New Name"
        assert set(cust.current_tool_ids) >= {"t3", "t4"}
        assert cust.current_tool_ids == ["t3", "t4", "t1"]
        assert cust.service_tiers == ["MSP"]


# ── Degraded lookups ─────────────────────────────────────────────────


class TestBestEffort:
    @pytest.mark.asyncio
    async def test_contact_failure_is_warning_not_error(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(companies=[company_factory(101, "Acme", contact_id=9)], fail_contacts={9})
        result = await run_sync(db_session, _factory(fake))

        assert result.success is True
        assert result.errors == []
        assert len(result.warnings) == 1
        assert "Failed to fetch contact for company Acme" in result.warnings[0]
        cust = db_session.query(Customer).filter_by(external_company_id=101).one()
        assert cust.primary_contact_name is None
        assert cust.contact_email is None

        log = db_session.query(SyncLog).one()
        assert log.status == "completed"
        assert log.warnings == result.warnings

    @pytest.mark.asyncio
    async def test_company_failure_isolated(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(
            companies=[company_factory(101, "Broken"), company_factory(102, "Fine")],
            fail_skus={101},
        )
        result = await run_sync(db_session, _factory(fake))

        assert result.success is False
        assert result.companies_imported == 1
        assert result.errors == ["Error processing company Broken: agreements endpoint returned 500"]
        assert db_session.query(Customer).filter_by(external_company_id=102).count() == 1
        assert db_session.query(Customer).filter_by(external_company_id=101).count() == 0

        row = db_session.query(ConnectwiseSettings).one()
        assert row.last_sync_status == "completed_with_errors"
        assert row.last_sync_message == "Imported 1, updated 0, skipped 0"
        assert db_session.query(SyncLog).one().status == "completed_with_errors"

    @pytest.mark.asyncio
    async def test_failed_commit_adds_no_counts(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(
            companies=[company_factory(101, "Too Long", contact_id=9), company_factory(102, "Fine")],
            skus={101: ["SEN-CYL-PRO"], 102: ["DNS-FLT"]},
            fail_contacts={9},
        )
        real_commit = db_session.commit
        calls = []

        def _commit_fails_once():
            calls.append(1)
            if len(calls) == 1:
                raise DataError("INSERT INTO customers", {}, Exception("value too long"))
            real_commit()

        with patch.object(db_session, "commit", side_effect=_commit_fails_once):
            result = await run_sync(db_session, _factory(fake))

        assert result.companies_imported == 1
        assert result.agreements_processed == 1
        assert result.tools_activated == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Error processing company Too Long:")
        assert any("Failed to fetch contact for company Too Long" in w for w in result.warnings)
        assert [c.external_company_id for c in db_session.query(Customer).all()] == [102]

        row = db_session.query(ConnectwiseSettings).one()
        assert row.last_sync_message == "Imported 1, updated 0, skipped 0"
        log = db_session.query(SyncLog).one()
        assert log.companies_imported == 1
        assert log.tools_activated == 1


# ── Baseline resolution ──────────────────────────────────────────────


class TestBaselineFallback:
    @pytest.mark.asyncio
    async def test_standard_name_fallback(self, db_session, cw_settings, catalog, fake_cw, company_factory):
        db_session.add(Baseline(id="b-adv", name="Advanced", required_tool_ids=[], optional_tool_ids=[]))
        db_session.add(ConnectwiseTypeMapping(external_type_name="Managed Client", service_tiers=[], should_import=True))
        db_session.commit()

        fake = fake_cw(companies=[company_factory(101, "Acme")])
        await run_sync(db_session, _factory(fake))
        cust = db_session.query(Customer).one()
        assert cust.baseline_id == "b-std"
        assert cust.service_tiers == ["Essentials"]

    @pytest.mark.asyncio
    async def test_settings_default_baseline(self, db_session, cw_settings, catalog, fake_cw, company_factory):
        db_session.add(Baseline(id="b-adv", name="Advanced", required_tool_ids=[], optional_tool_ids=[]))
        db_session.add(ConnectwiseTypeMapping(external_type_name="Managed Client", service_tiers=["MSP"], should_import=True))
        cw_settings.default_baseline_id = "b-adv"
        db_session.commit()

        fake = fake_cw(companies=[company_factory(101, "Acme")])
        await run_sync(db_session, _factory(fake))
        assert db_session.query(Customer).one().baseline_id == "b-adv"

    @pytest.mark.asyncio
    async def test_no_baseline_at_all(self, db_session, fake_cw, company_factory):
        db_session.add(ConnectwiseSettings(
            company_id="co", public_key="pk", private_key="sk",
            site_url="cw.example.com", client_id="cid", enabled=True,
        ))
        db_session.add(ConnectwiseTypeMapping(external_type_name="Managed Client", service_tiers=["MSP"], should_import=True))
        db_session.commit()

        fake = fake_cw(companies=[company_factory(101, "Acme")])
        result = await run_sync(db_session, _factory(fake))
        assert result.companies_skipped == 1
        assert result.errors == ["No baseline available for company Acme"]
        assert db_session.query(Customer).count() == 0


# ── Aborts ───────────────────────────────────────────────────────────


class TestAbort:
    @pytest.mark.asyncio
    async def test_no_settings(self, db_session, fake_cw):
        result = await run_sync(db_session, _factory(fake_cw()))
        assert result.success is False
        assert result.errors == ["ConnectWise settings not configured"]
        assert result.companies_found == 0
        progress = get_sync_progress()
        assert progress.status == "error"
        assert progress.state is SyncState.ERROR
        assert progress.current_step == "ConnectWise settings not configured"
        assert db_session.query(SyncLog).one().status == "error"

    @pytest.mark.asyncio
    async def test_disabled(self, db_session, cw_settings, cw_mappings, fake_cw):
        cw_settings.enabled = False
        db_session.commit()
        result = await run_sync(db_session, _factory(fake_cw()))
        assert result.errors == ["ConnectWise integration is not enabled"]
        assert db_session.get(ConnectwiseSettings, cw_settings.id).last_sync_status == "error"

    @pytest.mark.asyncio
    async def test_no_importable_types(self, db_session, cw_settings, catalog, fake_cw):
        db_session.add(ConnectwiseTypeMapping(external_type_name="Prospect", service_tiers=["MSP"], should_import=False))
        db_session.commit()
        result = await run_sync(db_session, _factory(fake_cw()))
        assert "No company types configured for import" in result.errors[0]

    @pytest.mark.asyncio
    async def test_connection_failure(self, db_session, cw_settings, cw_mappings, fake_cw):
        result = await run_sync(db_session, _factory(fake_cw(connection_ok=False)))
        assert result.errors == ["Connection failed: ConnectWise API error: 401 - Unauthorized"]
        row = db_session.get(ConnectwiseSettings, cw_settings.id)
        assert row.last_sync_status == "error"
        assert row.last_sync_message.startswith("Connection failed")

    @pytest.mark.asyncio
    async def test_company_fetch_failure_zeroes_counts(self, db_session, cw_settings, cw_mappings, fake_cw):
        fake = fake_cw(fail_companies=ConnectWiseApiError(500, "Internal Server Error"))
        result = await run_sync(db_session, _factory(fake))
        assert result.to_dict()["companies_found"] == 0
        assert result.errors == ["ConnectWise API error: 500 - Internal Server Error"]
        assert get_sync_progress().companies_total == 0


# ── Guard / progress ─────────────────────────────────────────────────


class TestGuard:
    @pytest.mark.asyncio
    async def test_second_run_rejected_while_running(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        gate = asyncio.Event()

        class SlowFake(fake_cw):
            async def test_connection(self):
                await gate.wait()
                return await super().test_connection()

        first = asyncio.create_task(run_sync(db_session, _factory(SlowFake(companies=[company_factory(101, "Acme")]))))
        await asyncio.sleep(0)
        assert sync_register.running

        with pytest.raises(SyncAlreadyRunning):
            await run_sync(db_session, _factory(fake_cw()))

        gate.set()
        result = await first
        assert result.companies_imported == 1
        assert not sync_register.running

    @pytest.mark.asyncio
    async def test_guard_released_after_abort(self, db_session, fake_cw):
        await run_sync(db_session, _factory(fake_cw()))
        assert not sync_register.running

    @pytest.mark.asyncio
    async def test_progress_completed(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        fake = fake_cw(companies=[company_factory(101, "A"), company_factory(102, "B")])
        await run_sync(db_session, _factory(fake))
        progress = get_sync_progress().to_dict()
        assert progress["status"] == "completed"
        assert progress["state"] == "completed"
        assert progress["current_step"] == "Sync completed"
        assert progress["companies_processed"] == 2
        assert progress["companies_total"] == 2

    @pytest.mark.asyncio
    async def test_progress_counts_never_go_backwards(self, db_session, cw_settings, cw_mappings, fake_cw, company_factory):
        seen = []

        class Watching(fake_cw):
            async def get_company_product_skus(self, company_id, warnings=None):
                p = get_sync_progress()
                seen.append((p.companies_fetched, p.companies_processed))
                return await super().get_company_product_skus(company_id, warnings)

        await run_sync(db_session, _factory(Watching(companies=[company_factory(101, "A"), company_factory(102, "B")])))
        assert seen == [(2, 1), (2, 2)]
        assert get_sync_progress().to_dict()["companies_fetched"] == 2

    def test_reset_clears_progress(self):
        sync_register.progress = object()
        sync_register.reset()
        assert get_sync_progress() is None
