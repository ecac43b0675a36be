"""Read-only accessors over mappings and catalog rows, used by the sync engine and the CRUD routers."""

from sqlalchemy.orm import Session

from ..models import (
    Baseline,
    ConnectwiseSkuMapping,
    ConnectwiseTypeMapping,
    Customer,
    Tool,
)


class MappingStore:
    def __init__(self, db: Session):
        self.db = db

    def all_type_mappings(self) -> list[ConnectwiseTypeMapping]:
        return self.db.query(ConnectwiseTypeMapping).all()

    def all_sku_mappings(self) -> list[ConnectwiseSkuMapping]:
        return self.db.query(ConnectwiseSkuMapping).all()

    def all_tools(self) -> list[Tool]:
        return self.db.query(Tool).all()

    def all_baselines(self) -> list[Baseline]:
        # Name order keeps the "first baseline" fallback stable across runs
        return self.db.query(Baseline).order_by(Baseline.name).all()

    def customer_by_external_id(self, external_company_id: int) -> Customer | None:
        return (
            self.db.query(Customer)
            .filter_by(external_company_id=external_company_id)
            .first()
        )

    def unknown_tool_ids(self, tool_ids) -> list[str]:
        """Ids from tool_ids with no Tool row, in the order given."""
        ids = list(dict.fromkeys(tool_ids or []))
        if not ids:
            return []
        found = {tid for (tid,) in self.db.query(Tool.id).filter(Tool.id.in_(ids)).all()}
        return [tid for tid in ids if tid not in found]
