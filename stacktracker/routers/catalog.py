"""Catalog API — categories, tools, and baselines."""

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Baseline, Category, Customer, Tool
from ..schemas.catalog import (
    BaselineCreate,
    BaselineOut,
    BaselineUpdate,
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    ToolCreate,
    ToolOut,
    ToolUpdate,
)
from ..services.mapping_store import MappingStore

router = APIRouter(tags=["catalog"])


def _get_or_404(db: Session, model, obj_id: str, label: str):
    obj = db.get(model, obj_id)
    if not obj:
        raise HTTPException(404, f"{label} not found")
    return obj


# ── Categories ───────────────────────────────────────────────────────


@router.get("/api/categories", response_model=list[CategoryOut])
def api_list_categories(db: Session = Depends(get_db)):
    return db.query(Category).order_by(Category.sort_order, Category.name).all()


@router.post("/api/categories", response_model=CategoryOut, status_code=201)
def api_create_category(payload: CategoryCreate, db: Session = Depends(get_db)):
    cat = Category(**payload.model_dump())
    db.add(cat)
    db.commit()
    db.refresh(cat)
    return cat


@router.patch("/api/categories/{category_id}", response_model=CategoryOut)
def api_update_category(category_id: str, payload: CategoryUpdate, db: Session = Depends(get_db)):
    cat = _get_or_404(db, Category, category_id, "Category")
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(cat, key, value)
    db.commit()
    db.refresh(cat)
    return cat


@router.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(category_id: str, db: Session = Depends(get_db)):
    cat = _get_or_404(db, Category, category_id, "Category")
    tool_count = len(cat.tools)
    db.delete(cat)
    db.commit()
    logger.info(f"Deleted category {category_id} and {tool_count} tool(s)")


# ── Tools ────────────────────────────────────────────────────────────


@router.get("/api/tools", response_model=list[ToolOut])
def api_list_tools(category_id: str | None = Query(None), db: Session = Depends(get_db)):
    q = db.query(Tool)
    if category_id:
        q = q.filter(Tool.category_id == category_id)
    return q.order_by(Tool.name).all()


@router.post("/api/tools", response_model=ToolOut, status_code=201)
def api_create_tool(payload: ToolCreate, db: Session = Depends(get_db)):
    if not db.get(Category, payload.category_id):
        raise HTTPException(400, "Category not found")
    tool = Tool(**payload.model_dump())
    db.add(tool)
    db.commit()
    db.refresh(tool)
    return tool


@router.patch("/api/tools/{tool_id}", response_model=ToolOut)
def api_update_tool(tool_id: str, payload: ToolUpdate, db: Session = Depends(get_db)):
    tool = _get_or_404(db, Tool, tool_id, "Tool")
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("category_id") and not db.get(Category, changes["category_id"]):
        raise HTTPException(400, "Category not found")
    for key, value in changes.items():
        if value is not None or key == "vendor":
            setattr(tool, key, value)
    db.commit()
    db.refresh(tool)
    return tool


@router.delete("/api/tools/{tool_id}", status_code=204)
def api_delete_tool(tool_id: str, db: Session = Depends(get_db)):
    tool = _get_or_404(db, Tool, tool_id, "Tool")
    db.delete(tool)
    db.commit()


# ── Baselines ────────────────────────────────────────────────────────


def _check_disjoint(required: list[str], optional: list[str]) -> None:
    overlap = [tid for tid in required if tid in set(optional)]
    if overlap:
        raise HTTPException(
            400, f"Tools cannot be both required and optional: {', '.join(overlap)}"
        )


def _check_tools_exist(db: Session, *tool_id_lists: list[str]) -> None:
    unknown = MappingStore(db).unknown_tool_ids(tid for ids in tool_id_lists for tid in ids)
    if unknown:
        raise HTTPException(400, f"Unknown tool ids: {', '.join(unknown)}")


@router.get("/api/baselines", response_model=list[BaselineOut])
def api_list_baselines(db: Session = Depends(get_db)):
    return db.query(Baseline).order_by(Baseline.name).all()


@router.get("/api/baselines/{baseline_id}", response_model=BaselineOut)
def api_get_baseline(baseline_id: str, db: Session = Depends(get_db)):
    return _get_or_404(db, Baseline, baseline_id, "Baseline")


@router.post("/api/baselines", response_model=BaselineOut, status_code=201)
def api_create_baseline(payload: BaselineCreate, db: Session = Depends(get_db)):
    _check_disjoint(payload.required_tool_ids, payload.optional_tool_ids)
    _check_tools_exist(db, payload.required_tool_ids, payload.optional_tool_ids)
    baseline = Baseline(**payload.model_dump())
    db.add(baseline)
    db.commit()
    db.refresh(baseline)
    return baseline


@router.patch("/api/baselines/{baseline_id}", response_model=BaselineOut)
def api_update_baseline(baseline_id: str, payload: BaselineUpdate, db: Session = Depends(get_db)):
    baseline = _get_or_404(db, Baseline, baseline_id, "Baseline")
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    _check_disjoint(
        changes.get("required_tool_ids", baseline.required_tool_ids or []),
        changes.get("optional_tool_ids", baseline.optional_tool_ids or []),
    )
    _check_tools_exist(
        db, changes.get("required_tool_ids", []), changes.get("optional_tool_ids", [])
    )
    for key, value in changes.items():
        setattr(baseline, key, value)
    db.commit()
    db.refresh(baseline)
    return baseline


@router.delete("/api/baselines/{baseline_id}", status_code=204)
def api_delete_baseline(baseline_id: str, db: Session = Depends(get_db)):
    baseline = _get_or_404(db, Baseline, baseline_id, "Baseline")
    in_use = db.query(Customer).filter(Customer.baseline_id == baseline_id).count()
    if in_use:
        raise HTTPException(409, f"Baseline is assigned to {in_use} customer(s)")
    db.delete(baseline)
    db.commit()
