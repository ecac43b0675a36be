"""Customer API — CRUD, bulk import, gap reports, and the gap summary."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from loguru import logger
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Baseline, Customer
from ..schemas.customers import (
    CustomerBulkCreate,
    CustomerCreate,
    CustomerOut,
    CustomerUpdate,
)
from ..services.gap_report import (
    GapReportNotFound,
    build_gap_report,
    gap_summary,
    render_gap_report_text,
)
from ..services.mapping_store import MappingStore

router = APIRouter(tags=["customers"])

_NULLABLE = {
    "address",
    "primary_contact_name",
    "customer_phone",
    "contact_phone",
    "contact_email",
}


def _require_baseline(db: Session, baseline_id: str) -> None:
    if not db.get(Baseline, baseline_id):
        raise HTTPException(400, "Baseline not found")


def _require_tools(db: Session, tool_ids: list[str], prefix: str = "") -> None:
    unknown = MappingStore(db).unknown_tool_ids(tool_ids)
    if unknown:
        raise HTTPException(400, f"{prefix}Unknown tool ids: {', '.join(unknown)}")


def _get_customer(db: Session, customer_id: str) -> Customer:
    customer = db.get(Customer, customer_id)
    if not customer:
        raise HTTPException(404, "Customer not found")
    return customer


@router.get("/api/customers", response_model=list[CustomerOut])
def api_list_customers(db: Session = Depends(get_db)):
    return db.query(Customer).order_by(Customer.name).all()


@router.get("/api/customers/{customer_id}", response_model=CustomerOut)
def api_get_customer(customer_id: str, db: Session = Depends(get_db)):
    return _get_customer(db, customer_id)


@router.post("/api/customers", response_model=CustomerOut, status_code=201)
def api_create_customer(payload: CustomerCreate, db: Session = Depends(get_db)):
    _require_baseline(db, payload.baseline_id)
    _require_tools(db, payload.current_tool_ids)
    customer = Customer(**payload.model_dump())
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


@router.post("/api/customers/bulk", response_model=list[CustomerOut], status_code=201)
def api_bulk_create_customers(payload: CustomerBulkCreate, db: Session = Depends(get_db)):
    """Insert already-parsed rows in one transaction. Any bad row rejects the batch."""
    known = {bid for (bid,) in db.query(Baseline.id).all()}
    for i, row in enumerate(payload.customers):
        if row.baseline_id not in known:
            raise HTTPException(400, f"Row {i + 1}: baseline not found")
        _require_tools(db, row.current_tool_ids, prefix=f"Row {i + 1}: ")

    created = [Customer(**row.model_dump()) for row in payload.customers]
    db.add_all(created)
    db.commit()
    for customer in created:
        db.refresh(customer)
    logger.info(f"Bulk import created {len(created)} customer(s)")
    return created


@router.patch("/api/customers/{customer_id}", response_model=CustomerOut)
def api_update_customer(customer_id: str, payload: CustomerUpdate, db: Session = Depends(get_db)):
    customer = _get_customer(db, customer_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("baseline_id"):
        _require_baseline(db, changes["baseline_id"])
    if changes.get("current_tool_ids"):
        _require_tools(db, changes["current_tool_ids"])
    for key, value in changes.items():
        if value is None and key not in _NULLABLE:
            continue
        setattr(customer, key, value)
    db.commit()
    db.refresh(customer)
    return customer


@router.delete("/api/customers/{customer_id}", status_code=204)
def api_delete_customer(customer_id: str, db: Session = Depends(get_db)):
    customer = _get_customer(db, customer_id)
    db.delete(customer)
    db.commit()


# ── Gap reports ──────────────────────────────────────────────────────


@router.get("/api/customers/{customer_id}/gap-report")
def api_gap_report(customer_id: str, db: Session = Depends(get_db)):
    try:
        report = build_gap_report(db, customer_id)
    except GapReportNotFound as e:
        raise HTTPException(404, str(e))
    return report.to_dict()


@router.get("/api/customers/{customer_id}/gap-report.txt", response_class=PlainTextResponse)
def api_gap_report_text(customer_id: str, db: Session = Depends(get_db)):
    try:
        report = build_gap_report(db, customer_id)
    except GapReportNotFound as e:
        raise HTTPException(404, str(e))
    return PlainTextResponse(render_gap_report_text(report))


@router.get("/api/gap-summary")
def api_gap_summary(db: Session = Depends(get_db)):
    return gap_summary(db)
