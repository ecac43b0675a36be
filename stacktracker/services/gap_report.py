"""
gap_report.py — Baseline coverage and gap computation

Pure functions over already-loaded Customer, Baseline, Tool and Category
records, plus the plain-text export users paste into tickets and QBRs.

Business Rules:
- Required coverage: distinct required tools present / distinct required
  tools; 100% when nothing is required
- Overall coverage: same ratio over required + optional tools combined
- Missing tools keep the order they first appear in the baseline
- Category rows cover required tools only, in category order; categories
  without a required tool are omitted
- Tool ids that no longer resolve to a Tool are ignored, not errors
- Text export line order and wording are a stable contract

Called by: routers/customers.py
Depends on: models (Customer, Baseline, Tool, Category)
"""

import math
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ..models import Baseline, Category, Customer, Tool
from ..utils import uniq

REPORT_TITLE = "CoreTech Stack Alignment Tool — Gap Report"


class GapReportNotFound(LookupError):
    """Customer or its baseline does not exist."""


@dataclass
class Coverage:
    covered: int
    total: int
    pct: float

    def to_dict(self) -> dict:
        return {"covered": self.covered, "total": self.total, "pct": self.pct}


@dataclass
class CategoryCoverage:
    category: Category
    covered: int
    total: int
    pct: float

    def to_dict(self) -> dict:
        return {
            "category_id": self.category.id,
            "category_name": self.category.name,
            "covered": self.covered,
            "total": self.total,
            "pct": self.pct,
        }


def coverage(current_tool_ids, required_tool_ids) -> Coverage:
    required = uniq(required_tool_ids)
    current = set(current_tool_ids or [])
    covered = sum(1 for tid in required if tid in current)
    total = len(required)
    pct = 100.0 if total == 0 else covered / total * 100
    return Coverage(covered=covered, total=total, pct=pct)


def missing(current_tool_ids, required_tool_ids) -> list[str]:
    current = set(current_tool_ids or [])
    return [tid for tid in uniq(required_tool_ids) if tid not in current]


def category_coverage(current_tool_ids, required_tool_ids, tools, categories) -> list[CategoryCoverage]:
    current = set(current_tool_ids or [])
    tool_by_id = {t.id: t for t in tools}

    counts: dict[str, list[int]] = {}
    for tid in uniq(required_tool_ids):
        tool = tool_by_id.get(tid)
        if tool is None:
            continue
        entry = counts.setdefault(tool.category_id, [0, 0])
        entry[1] += 1
        if tid in current:
            entry[0] += 1

    rows = []
    for cat in categories:
        covered, total = counts.get(cat.id, (0, 0))
        if total == 0:
            continue
        rows.append(CategoryCoverage(cat, covered, total, covered / total * 100))
    return rows


def optional_recommendations(baseline, customer) -> list[str]:
    current = set(customer.current_tool_ids or [])
    return [tid for tid in uniq(baseline.optional_tool_ids) if tid not in current]


@dataclass
class GapReport:
    customer: Customer
    baseline: Baseline
    required: Coverage
    overall: Coverage
    missing_tool_ids: list[str]
    category_coverage: list[CategoryCoverage]
    recommended_tool_ids: list[str]
    tool_names: dict[str, str] = field(default_factory=dict)
    tool_categories: dict[str, str] = field(default_factory=dict)

    def _tool_summary(self, tid: str) -> dict:
        return {
            "id": tid,
            "name": self.tool_names.get(tid, tid),
            "category_name": self.tool_categories.get(tid, "Unknown"),
        }

    def to_dict(self) -> dict:
        return {
            "customer": {"id": self.customer.id, "name": self.customer.name},
            "baseline": {"id": self.baseline.id, "name": self.baseline.name},
            "coverage": {
                "required": self.required.to_dict(),
                "overall": self.overall.to_dict(),
                "by_category": [row.to_dict() for row in self.category_coverage],
            },
            "missing_tools": [self._tool_summary(t) for t in self.missing_tool_ids],
            "optional_recommendations": [
                self._tool_summary(t) for t in self.recommended_tool_ids
            ],
            "total_required": self.required.total,
            "total_optional": self.overall.total - self.required.total,
            "missing_required_count": len(self.missing_tool_ids),
        }


def gap_report(customer, baseline, tools, categories) -> GapReport:
    """Full report for one customer against one baseline."""
    tools = list(tools)
    known = {t.id for t in tools}
    category_names = {c.id: c.name for c in categories}

    required = [tid for tid in uniq(baseline.required_tool_ids) if tid in known]
    optional = [tid for tid in uniq(baseline.optional_tool_ids) if tid in known]
    current = customer.current_tool_ids or []

    return GapReport(
        customer=customer,
        baseline=baseline,
        required=coverage(current, required),
        overall=coverage(current, uniq(required + optional)),
        missing_tool_ids=missing(current, required),
        category_coverage=category_coverage(current, required, tools, categories),
        recommended_tool_ids=[
            tid for tid in optional_recommendations(baseline, customer) if tid in known
        ],
        tool_names={t.id: t.name for t in tools},
        tool_categories={
            t.id: category_names.get(t.category_id, "Unknown") for t in tools
        },
    )


def _round_half_up(pct: float) -> int:
    return int(math.floor(pct + 0.5))


def render_gap_report_text(report: GapReport) -> str:
    """Line-oriented export. Wording and order must not change."""
    names = report.tool_names
    lines = [
        REPORT_TITLE,
        f"Customer: {report.customer.name}",
        f"Baseline: {report.baseline.name}",
        f"Coverage: {_round_half_up(report.required.pct)}% "
        f"({report.required.covered}/{report.required.total})",
        "",
        "Missing tools:",
    ]
    if not report.missing_tool_ids:
        lines.append("- None (fully aligned)")
    else:
        lines.extend(f"- {names.get(tid, tid)}" for tid in report.missing_tool_ids)

    lines.append("")
    lines.append("Category coverage:")
    for row in report.category_coverage:
        lines.append(
            f"- {row.category.name}: {_round_half_up(row.pct)}% ({row.covered}/{row.total})"
        )

    lines.append("")
    lines.append("Optional recommendations:")
    if not report.recommended_tool_ids:
        lines.append("- None")
    else:
        lines.extend(f"- {names.get(tid, tid)}" for tid in report.recommended_tool_ids)

    return "\n".join(lines)


# ── DB-backed entry points ───────────────────────────────────────────


def build_gap_report(db: Session, customer_id: str) -> GapReport:
    customer = db.get(Customer, customer_id)
    if not customer:
        raise GapReportNotFound("Customer not found")
    baseline = db.get(Baseline, customer.baseline_id)
    if not baseline:
        raise GapReportNotFound("Baseline not found")
    tools = db.query(Tool).all()
    categories = db.query(Category).order_by(Category.sort_order, Category.name).all()
    return gap_report(customer, baseline, tools, categories)


def gap_summary(db: Session) -> dict:
    """Required coverage and gap count for every customer, most gaps first."""
    known = {tid for (tid,) in db.query(Tool.id).all()}
    baselines = {b.id: b for b in db.query(Baseline).all()}

    rows = []
    for customer in db.query(Customer).all():
        baseline = baselines.get(customer.baseline_id)
        required = [
            tid for tid in uniq(baseline.required_tool_ids if baseline else [])
            if tid in known
        ]
        cov = coverage(customer.current_tool_ids, required)
        rows.append({
            "customer_id": customer.id,
            "customer_name": customer.name,
            "baseline_id": customer.baseline_id,
            "baseline_name": baseline.name if baseline else None,
            "coverage": cov.to_dict(),
            "gap_count": cov.total - cov.covered,
        })

    rows.sort(key=lambda r: (-r["gap_count"], r["customer_name"].lower()))
    total = len(rows)
    with_gaps = sum(1 for r in rows if r["gap_count"] > 0)
    avg = sum(r["coverage"]["pct"] for r in rows) / total if total else 0.0
    return {
        "total": total,
        "with_gaps": with_gaps,
        "fully_aligned": total - with_gaps,
        "avg_coverage": avg,
        "customers": rows,
    }
