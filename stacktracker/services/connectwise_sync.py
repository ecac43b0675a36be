"""
connectwise_sync.py — ConnectWise → Customer reconciliation

One full pass: test the connection, load mappings, page through every
ConnectWise company, and import or update the matching Customer records.

Business Rules:
- One run per process. A second run while one is in flight raises
  SyncAlreadyRunning instead of sharing progress state
- Config problems (no settings, disabled, no importable types) and
  connectivity failures abort the run before any company is touched;
  counters come back as zero and the single error is recorded
- Each company is processed independently; its failure is recorded in
  errors and the loop moves on. Its counts are dropped with the rollback;
  only committed companies add to the run totals
- Contact and agreement-addition lookups are best effort: failures go to
  warnings, never to errors, and do not change the run status
- Customers are matched by external_company_id; updates union the tool
  set (tools are never removed by a sync)
- Baseline: type mapping → settings default → name contains "Standard"
  → first baseline
- Every run, aborted or not, writes a SyncLog row and stamps last_sync_*
  on the settings row

Called by: routers/connectwise.py
Depends on: connectors/connectwise.py, services/mapping_store.py, models
"""

import enum
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Callable

from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.connectwise import ConnectWiseClient
from ..models import ConnectwiseSettings, Customer, SyncLog
from ..models.base import utcnow
from ..utils import uniq
from .mapping_store import MappingStore

log = logging.getLogger(__name__)

DEFAULT_TIERS = ["Essentials"]


class SyncAlreadyRunning(RuntimeError):
    """Another sync holds the single-run guard."""


class SyncConfigError(Exception):
    """Aborts a run before any company is processed."""


class SyncState(str, enum.Enum):
    INIT = "init"
    TESTING_CONNECTION = "testing_connection"
    LOADING_MAPPINGS = "loading_mappings"
    FETCHING_COMPANIES = "fetching_companies"
    PROCESSING_COMPANIES = "processing_companies"
    COMPLETED = "completed"
    ERROR = "error"


_STEP_LABELS = {
    SyncState.INIT: "Initializing",
    SyncState.TESTING_CONNECTION: "Testing connection",
    SyncState.LOADING_MAPPINGS: "Fetching company type mappings",
    SyncState.FETCHING_COMPANIES: "Fetching companies from ConnectWise",
    SyncState.PROCESSING_COMPANIES: "Processing companies",
    SyncState.COMPLETED: "Sync completed",
}


@dataclass
class SyncProgress:
    """Snapshot pollers read while a run is in flight."""

    status: str = "running"
    state: SyncState = SyncState.INIT
    current_step: str = _STEP_LABELS[SyncState.INIT]
    companies_fetched: int = 0
    companies_processed: int = 0
    companies_total: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["state"] = self.state.value
        return d


@dataclass
class SyncResult:
    success: bool = False
    companies_found: int = 0
    companies_imported: int = 0
    companies_updated: int = 0
    companies_skipped: int = 0
    agreements_processed: int = 0
    tools_activated: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    def absorb(self, other: "SyncResult") -> None:
        """Add one company's committed counts and messages to the run total."""
        self.companies_imported += other.companies_imported
        self.companies_updated += other.companies_updated
        self.companies_skipped += other.companies_skipped
        self.agreements_processed += other.agreements_processed
        self.tools_activated += other.tools_activated
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


class SyncRegister:
    """Single-slot holder for the current/last run plus the run guard."""

    def __init__(self):
        self._lock = threading.Lock()
        self.progress: SyncProgress | None = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def claim(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise SyncAlreadyRunning("A ConnectWise sync is already running")

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()

    def reset(self) -> None:
        """Forget the last run. Called at process start."""
        self.progress = None

    def transition(self, state: SyncState, step: str | None = None) -> None:
        if self.progress is None:
            return
        self.progress.state = state
        self.progress.current_step = step or _STEP_LABELS.get(state, state.value)
        log.info(f"ConnectWise sync: {self.progress.current_step}")


sync_register = SyncRegister()


def get_sync_progress() -> SyncProgress | None:
    return sync_register.progress


ClientFactory = Callable[[ConnectwiseSettings], ConnectWiseClient]


def _default_client(row: ConnectwiseSettings) -> ConnectWiseClient:
    return ConnectWiseClient.from_settings(
        row, timeout=settings.connectwise_timeout_seconds
    )


async def run_sync(db: Session, client_factory: ClientFactory | None = None) -> SyncResult:
    """Claim the run guard and execute one full sync."""
    sync_register.claim()
    return await run_claimed_sync(db, client_factory)


async def run_claimed_sync(
    db: Session, client_factory: ClientFactory | None = None
) -> SyncResult:
    """Execute a sync whose guard the caller already claimed. Always releases it."""
    try:
        return await _execute(db, client_factory or _default_client)
    finally:
        sync_register.release()


# ── Run ──────────────────────────────────────────────────────────────


async def _execute(db: Session, client_factory: ClientFactory) -> SyncResult:
    started = utcnow()
    t0 = time.monotonic()
    progress = SyncProgress()
    sync_register.progress = progress
    log.info("ConnectWise sync started")

    try:
        cw = db.query(ConnectwiseSettings).first()
        if not cw:
            raise SyncConfigError("ConnectWise settings not configured")
        if not cw.enabled:
            raise SyncConfigError("ConnectWise integration is not enabled")

        client = client_factory(cw)

        sync_register.transition(SyncState.TESTING_CONNECTION)
        test = await client.test_connection()
        if not test.get("success"):
            raise SyncConfigError(f"Connection failed: {test.get('message')}")

        sync_register.transition(SyncState.LOADING_MAPPINGS)
        ctx = _load_context(MappingStore(db), cw)
        if not ctx.importable:
            raise SyncConfigError(
                "No company types configured for import. Please set up type mappings first."
            )

        sync_register.transition(SyncState.FETCHING_COMPANIES)

        def _on_page(current: int, total: int) -> None:
            progress.companies_fetched = current
            progress.companies_total = total

        companies = await client.get_all_companies(None, _on_page)
    except Exception as e:
        return _abort(db, progress, started, t0, e)

    result = SyncResult(companies_found=len(companies))
    progress.companies_total = len(companies)
    sync_register.transition(SyncState.PROCESSING_COMPANIES)

    store = MappingStore(db)
    for i, company in enumerate(companies, start=1):
        progress.companies_processed = i
        # Counts only reach the run total once the company's rows are committed
        delta = SyncResult()
        try:
            await _process_company(client, store, ctx, company, delta)
            db.commit()
        except Exception as e:
            db.rollback()
            msg = f"Error processing company {company.name}: {e}"
            log.error(msg)
            result.warnings.extend(delta.warnings)
            result.errors.append(msg)
        else:
            result.absorb(delta)
        progress.errors = list(result.errors)
        progress.warnings = list(result.warnings)

    result.success = not result.errors
    result.duration_ms = int((time.monotonic() - t0) * 1000)

    _write_log(db, "completed" if result.success else "completed_with_errors",
               started, result)
    _stamp_settings(
        db,
        "success" if result.success else "completed_with_errors",
        f"Imported {result.companies_imported}, updated {result.companies_updated}, "
        f"skipped {result.companies_skipped}",
    )

    progress.status = "completed"
    sync_register.transition(SyncState.COMPLETED)
    log.info(
        f"ConnectWise sync finished in {result.duration_ms}ms — found "
        f"{result.companies_found}, imported {result.companies_imported}, "
        f"updated {result.companies_updated}, skipped {result.companies_skipped}, "
        f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)"
    )
    return result


def _abort(db: Session, progress: SyncProgress, started, t0: float, exc: Exception) -> SyncResult:
    message = str(exc) or type(exc).__name__
    if isinstance(exc, SyncConfigError):
        log.error(f"ConnectWise sync aborted: {message}")
    else:
        log.exception("ConnectWise sync aborted")
    db.rollback()

    result = SyncResult(
        errors=[message],
        duration_ms=int((time.monotonic() - t0) * 1000),
    )
    progress.status = "error"
    progress.state = SyncState.ERROR
    progress.current_step = message
    progress.errors = [message]

    _write_log(db, "error", started, result)
    _stamp_settings(db, "error", message)
    return result


# ── Per-company ──────────────────────────────────────────────────────


@dataclass
class _Context:
    """Plain-value snapshot of mappings, safe across per-company commits."""

    importable: set[str]
    type_mappings: dict[str, dict]
    sku_to_tool: dict[str, str]
    baseline_ids: list[str]
    fallback_baseline_id: str | None


def _load_context(store: MappingStore, cw: ConnectwiseSettings) -> _Context:
    type_mappings = {
        m.external_type_name: {
            "baseline_id": m.baseline_id,
            "service_tiers": list(m.service_tiers or []),
            "should_import": m.should_import,
        }
        for m in store.all_type_mappings()
    }
    known_tools = {t.id for t in store.all_tools()}
    sku_to_tool = {
        m.sku: m.tool_id
        for m in store.all_sku_mappings()
        if m.tool_id and m.tool_id in known_tools
    }
    baselines = store.all_baselines()
    baseline_ids = [b.id for b in baselines]

    if cw.default_baseline_id in baseline_ids:
        fallback = cw.default_baseline_id
    else:
        standard = next((b for b in baselines if "Standard" in b.name), None)
        chosen = standard or (baselines[0] if baselines else None)
        fallback = chosen.id if chosen else None

    return _Context(
        importable={n for n, m in type_mappings.items() if m["should_import"]},
        type_mappings=type_mappings,
        sku_to_tool=sku_to_tool,
        baseline_ids=baseline_ids,
        fallback_baseline_id=fallback,
    )


async def _process_company(client, store: MappingStore, ctx: _Context, company, result: SyncResult) -> None:
    matching_type = next((t for t in company.type_names if t in ctx.importable), None)
    if matching_type is None:
        result.companies_skipped += 1
        return
    mapping = ctx.type_mappings.get(matching_type)
    if mapping is None:
        result.companies_skipped += 1
        return

    existing = store.customer_by_external_id(company.id)

    contact_name = contact_email = contact_phone = None
    if company.default_contact and company.default_contact.id:
        try:
            contact = await client.get_company_contact(company.default_contact.id)
            contact_name = contact.display_name or None
            contact_email = contact.preferred_value("email")
            contact_phone = contact.preferred_value("phone")
        except Exception as e:
            msg = f"Failed to fetch contact for company {company.name}: {e}"
            log.warning(msg)
            result.warnings.append(msg)

    address = company.single_line_address() or None

    skus = await client.get_company_product_skus(company.id, warnings=result.warnings)
    result.agreements_processed += 1

    activated = []
    for sku in skus:
        tool_id = ctx.sku_to_tool.get(sku)
        if tool_id:
            activated.append(tool_id)
            result.tools_activated += 1

    baseline_id = mapping["baseline_id"]
    if baseline_id not in ctx.baseline_ids:
        baseline_id = ctx.fallback_baseline_id
    if not baseline_id:
        result.errors.append(f"No baseline available for company {company.name}")
        result.companies_skipped += 1
        return

    fields = {
        "name": company.name,
        "address": address,
        "primary_contact_name": contact_name,
        "customer_phone": company.phone_number or None,
        "contact_phone": contact_phone,
        "contact_email": contact_email,
        "service_tiers": mapping["service_tiers"] or list(DEFAULT_TIERS),
        "baseline_id": baseline_id,
        "last_external_sync_at": utcnow(),
    }

    if existing:
        for key, value in fields.items():
            setattr(existing, key, value)
        existing.current_tool_ids = uniq(list(existing.current_tool_ids or []) + activated)
        result.companies_updated += 1
    else:
        store.db.add(Customer(
            external_company_id=company.id,
            current_tool_ids=uniq(activated),
            **fields,
        ))
        result.companies_imported += 1


# ── Bookkeeping ──────────────────────────────────────────────────────


def _write_log(db: Session, status: str, started, result: SyncResult) -> None:
    try:
        db.add(SyncLog(
            source="connectwise",
            status=status,
            started_at=started,
            completed_at=utcnow(),
            duration_ms=result.duration_ms,
            companies_found=result.companies_found,
            companies_imported=result.companies_imported,
            companies_updated=result.companies_updated,
            companies_skipped=result.companies_skipped,
            agreements_processed=result.agreements_processed,
            tools_activated=result.tools_activated,
            errors=list(result.errors),
            warnings=list(result.warnings),
        ))
        db.commit()
    except Exception:
        log.exception("Failed to write sync log")
        db.rollback()


def _stamp_settings(db: Session, status: str, message: str) -> None:
    try:
        cw = db.query(ConnectwiseSettings).first()
        if not cw:
            return
        cw.last_sync_at = utcnow()
        cw.last_sync_status = status
        cw.last_sync_message = message
        db.commit()
    except Exception:
        log.exception("Failed to update ConnectWise sync status")
        db.rollback()
