"""
routers/connectwise.py — ConnectWise integration API

Settings (write-only private key), connection test, company-type lookup,
type/SKU mapping CRUD, and the fire-and-poll sync trigger.

Business Rules:
- POST sync claims the single-run guard before returning; 409 if taken
- Background runs get their own DB session, closed when the run ends
- ?wait=true runs inline and returns the SyncResult
- Duplicate external type names and SKUs are 409

Called by: main.py
Depends on: services/connectwise_settings.py, services/connectwise_sync.py
"""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.orm import Session

from ..connectors.connectwise import ConnectWiseApiError
from ..database import SessionLocal, get_db
from ..models import Baseline, ConnectwiseSkuMapping, ConnectwiseTypeMapping, SyncLog, Tool
from ..schemas.connectwise import (
    ConnectwiseCredentialsIn,
    ConnectwiseSettingsOut,
    ConnectwiseSettingsSave,
    SkuMappingCreate,
    SkuMappingOut,
    SkuMappingUpdate,
    SyncLogOut,
    TypeMappingCreate,
    TypeMappingOut,
    TypeMappingUpdate,
)
from ..services.connectwise_settings import (
    SettingsError,
    client_for_test,
    get_settings_row,
    save_settings,
    secret_from_input,
    settings_to_dict,
    stored_client,
)
from ..services.connectwise_sync import (
    SyncAlreadyRunning,
    get_sync_progress,
    run_claimed_sync,
    sync_register,
)

router = APIRouter(tags=["connectwise"])


# ── Settings ─────────────────────────────────────────────────────────


@router.get("/api/connectwise/settings", response_model=ConnectwiseSettingsOut | None)
def api_get_settings(db: Session = Depends(get_db)):
    row = get_settings_row(db)
    return settings_to_dict(row) if row else None


@router.put("/api/connectwise/settings", response_model=ConnectwiseSettingsOut)
def api_save_settings(payload: ConnectwiseSettingsSave, db: Session = Depends(get_db)):
    data = payload.model_dump(exclude={"private_key"})
    try:
        row = save_settings(db, data, secret_from_input(payload.private_key))
    except SettingsError as e:
        raise HTTPException(400, str(e))
    logger.info(f"ConnectWise settings saved (enabled={row.enabled})")
    return settings_to_dict(row)


@router.post("/api/connectwise/test-connection")
async def api_test_connection(payload: ConnectwiseCredentialsIn, db: Session = Depends(get_db)):
    creds = payload.model_dump(exclude={"private_key"})
    try:
        client = client_for_test(db, creds, secret_from_input(payload.private_key))
    except SettingsError as e:
        raise HTTPException(400, str(e))
    return await client.test_connection()


@router.get("/api/connectwise/company-types")
async def api_company_types(db: Session = Depends(get_db)):
    try:
        client = stored_client(db)
        types = await client.list_company_types()
    except SettingsError as e:
        raise HTTPException(400, str(e))
    except ConnectWiseApiError as e:
        logger.warning(f"ConnectWise company types lookup failed: {e}")
        raise HTTPException(502, str(e))
    return [{"id": t.id, "name": t.name} for t in types]


# ── Type mappings ────────────────────────────────────────────────────


def _check_baseline(db: Session, baseline_id: str | None) -> None:
    if baseline_id and not db.get(Baseline, baseline_id):
        raise HTTPException(400, "Baseline not found")


def _type_name_taken(db: Session, name: str, exclude_id: str | None = None) -> bool:
    q = db.query(ConnectwiseTypeMapping).filter(
        ConnectwiseTypeMapping.external_type_name == name
    )
    if exclude_id:
        q = q.filter(ConnectwiseTypeMapping.id != exclude_id)
    return q.first() is not None


@router.get("/api/connectwise/type-mappings", response_model=list[TypeMappingOut])
def api_list_type_mappings(db: Session = Depends(get_db)):
    return db.query(ConnectwiseTypeMapping).order_by(ConnectwiseTypeMapping.external_type_name).all()


@router.post("/api/connectwise/type-mappings", response_model=TypeMappingOut, status_code=201)
def api_create_type_mapping(payload: TypeMappingCreate, db: Session = Depends(get_db)):
    _check_baseline(db, payload.baseline_id)
    if _type_name_taken(db, payload.external_type_name):
        raise HTTPException(409, "A mapping for this company type already exists")
    mapping = ConnectwiseTypeMapping(**payload.model_dump())
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    return mapping


@router.patch("/api/connectwise/type-mappings/{mapping_id}", response_model=TypeMappingOut)
def api_update_type_mapping(mapping_id: str, payload: TypeMappingUpdate, db: Session = Depends(get_db)):
    mapping = db.get(ConnectwiseTypeMapping, mapping_id)
    if not mapping:
        raise HTTPException(404, "Type mapping not found")
    changes = payload.model_dump(exclude_unset=True)
    _check_baseline(db, changes.get("baseline_id"))
    name = changes.get("external_type_name")
    if name and _type_name_taken(db, name, exclude_id=mapping_id):
        raise HTTPException(409, "A mapping for this company type already exists")
    for key, value in changes.items():
        if value is None and key != "baseline_id":
            continue
        setattr(mapping, key, value)
    db.commit()
    db.refresh(mapping)
    return mapping


@router.delete("/api/connectwise/type-mappings/{mapping_id}", status_code=204)
def api_delete_type_mapping(mapping_id: str, db: Session = Depends(get_db)):
    mapping = db.get(ConnectwiseTypeMapping, mapping_id)
    if not mapping:
        raise HTTPException(404, "Type mapping not found")
    db.delete(mapping)
    db.commit()


# ── SKU mappings ─────────────────────────────────────────────────────


def _check_tool(db: Session, tool_id: str | None) -> None:
    if tool_id and not db.get(Tool, tool_id):
        raise HTTPException(400, "Tool not found")


def _sku_taken(db: Session, sku: str, exclude_id: str | None = None) -> bool:
    q = db.query(ConnectwiseSkuMapping).filter(ConnectwiseSkuMapping.sku == sku)
    if exclude_id:
        q = q.filter(ConnectwiseSkuMapping.id != exclude_id)
    return q.first() is not None


@router.get("/api/connectwise/sku-mappings", response_model=list[SkuMappingOut])
def api_list_sku_mappings(db: Session = Depends(get_db)):
    return db.query(ConnectwiseSkuMapping).order_by(ConnectwiseSkuMapping.sku).all()


@router.post("/api/connectwise/sku-mappings", response_model=SkuMappingOut, status_code=201)
def api_create_sku_mapping(payload: SkuMappingCreate, db: Session = Depends(get_db)):
    _check_tool(db, payload.tool_id)
    if _sku_taken(db, payload.sku):
        raise HTTPException(409, "A mapping for this SKU already exists")
    mapping = ConnectwiseSkuMapping(**payload.model_dump())
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    return mapping


@router.patch("/api/connectwise/sku-mappings/{mapping_id}", response_model=SkuMappingOut)
def api_update_sku_mapping(mapping_id: str, payload: SkuMappingUpdate, db: Session = Depends(get_db)):
    mapping = db.get(ConnectwiseSkuMapping, mapping_id)
    if not mapping:
        raise HTTPException(404, "SKU mapping not found")
    changes = payload.model_dump(exclude_unset=True)
    _check_tool(db, changes.get("tool_id"))
    sku = changes.get("sku")
    if sku and _sku_taken(db, sku, exclude_id=mapping_id):
        raise HTTPException(409, "A mapping for this SKU already exists")
    for key, value in changes.items():
        if value is None and key == "sku":
            continue
        setattr(mapping, key, value)
    db.commit()
    db.refresh(mapping)
    return mapping


@router.delete("/api/connectwise/sku-mappings/{mapping_id}", status_code=204)
def api_delete_sku_mapping(mapping_id: str, db: Session = Depends(get_db)):
    mapping = db.get(ConnectwiseSkuMapping, mapping_id)
    if not mapping:
        raise HTTPException(404, "SKU mapping not found")
    db.delete(mapping)
    db.commit()


# ── Sync ─────────────────────────────────────────────────────────────


async def _sync_bg():
    db = SessionLocal()
    try:
        await run_claimed_sync(db)
    except Exception:
        logger.exception("Background ConnectWise sync failed")
    finally:
        db.close()


@router.post("/api/connectwise/sync")
async def api_start_sync(wait: bool = Query(False), db: Session = Depends(get_db)):
    try:
        sync_register.claim()
    except SyncAlreadyRunning as e:
        raise HTTPException(409, str(e))

    if wait:
        result = await run_claimed_sync(db)
        return result.to_dict()

    asyncio.create_task(_sync_bg())
    logger.info("ConnectWise sync started in background")
    return JSONResponse({"status": "started"}, status_code=202)


@router.get("/api/connectwise/sync/progress")
def api_sync_progress():
    progress = get_sync_progress()
    return progress.to_dict() if progress else None


@router.get("/api/connectwise/sync-logs", response_model=list[SyncLogOut])
def api_sync_logs(limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    return (
        db.query(SyncLog)
        .filter(SyncLog.source == "connectwise")
        .order_by(SyncLog.started_at.desc())
        .limit(limit)
        .all()
    )
