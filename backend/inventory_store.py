from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, SessionTransaction

from backend.db_models import InventoryORM
from deduction_rules.models import InventoryRecord

logger = logging.getLogger(__name__)


def _to_record(row: InventoryORM) -> InventoryRecord:
    return InventoryRecord.model_validate(row)


class InventoryCatalog:
    """Read/write access to the ``inventario`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_all(self) -> List[InventoryRecord]:
        rows = self.db.query(InventoryORM).order_by(InventoryORM.id).all()
        return [_to_record(row) for row in rows]

    def list_by_type(self, types: Iterable[str]) -> List[InventoryRecord]:
        wanted = list(types)
        if not wanted:
            return []
        rows = self.db.query(InventoryORM).filter(InventoryORM.tipo.in_(wanted)).order_by(InventoryORM.id).all()
        return [_to_record(row) for row in rows]

    def get_by_id(self, inventory_id: str, *, lock: bool = False) -> Optional[InventoryRecord]:
        row = self.db.get(InventoryORM, inventory_id, populate_existing=True, with_for_update=lock or None)
        return _to_record(row) if row is not None else None

    def add(self, nombre: str, tipo: Optional[str] = None, cantidad: float = 0, *, id: Optional[str] = None) -> InventoryRecord:
        row = InventoryORM(nombre=nombre, tipo=tipo, cantidad=cantidad)
        if id is not None:
            row.id = id
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return _to_record(row)

    def update_quantity(self, inventory_id: str, new_quantity: float) -> Optional[InventoryRecord]:
        """Overwrite the stock level of one record; returns None when it does not exist."""
        row = self.db.get(InventoryORM, inventory_id)
        if row is None:
            return None
        row.cantidad = new_quantity
        self.db.commit()
        logger.info("Inventory item %s set to %s", inventory_id, new_quantity)
        self.db.refresh(row)
        return _to_record(row)

    def decrement(self, inventory_id: str, amount: float) -> Optional[InventoryRecord]:
        """
        Subtract ``amount`` inside the database (``cantidad = cantidad - amount``) so
        concurrent sales never overwrite each other's decrements.

        Does not commit; the caller owns the transaction.
        """
        result = self.db.execute(
            update(InventoryORM)
            .where(InventoryORM.id == inventory_id)
            .values(cantidad=InventoryORM.cantidad - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        row = self.db.get(InventoryORM, inventory_id, populate_existing=True)
        return _to_record(row) if row is not None else None

    def savepoint(self) -> SessionTransaction:
        return self.db.begin_nested()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
