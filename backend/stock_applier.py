"""Apply an aggregated demand map to the inventory catalog, one target at a time."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError

from deduction_rules.core import format_quantity

logger = logging.getLogger(__name__)


class ApplyReport(NamedTuple):
    logs: List[str]
    applied: Dict[str, float]
    negative_stock: List[str]
    failed: List[str]


def apply_demand(demand: Mapping[str, float], catalog, logs: Optional[List[str]] = None) -> ApplyReport:
    """
    Decrement every target of ``demand`` in order.

    Each target runs in its own savepoint: a missing record or a failing write is
    logged and skipped without touching the others. Successful decrements are
    committed together once the loop ends; if that commit fails every decrement
    is rolled back and the transcript says so. Stock may go negative.
    """
    if logs is None:
        logs = []
    applied: Dict[str, float] = {}
    negative: List[str] = []
    failed: List[str] = []

    for target_id, amount in demand.items():
        qty = format_quantity(amount)
        name = target_id
        try:
            with catalog.savepoint():
                current = catalog.get_by_id(target_id, lock=True)
                if current is None:
                    logs.append(f"Error: Inventory item {target_id} not found; skipped deduction of {qty}")
                    logger.error("Inventory item %s not found while deducting %s", target_id, qty)
                    failed.append(target_id)
                    continue
                name = current.nombre
                updated = catalog.decrement(target_id, amount)
        except SQLAlchemyError as exc:
            logs.append(f"Error updating {name}: {exc}")
            logger.error("Error updating stock for %s: %s", target_id, exc)
            failed.append(target_id)
            continue

        if updated is None:
            logs.append(f"Error: Inventory item {target_id} disappeared before its deduction of {qty}")
            logger.error("Inventory item %s vanished between read and write", target_id)
            failed.append(target_id)
            continue

        applied[target_id] = amount
        logs.append(f"Deducted {qty} from {updated.nombre}. New Stock: {format_quantity(updated.cantidad)}")
        if updated.cantidad < 0:
            negative.append(target_id)
            logger.warning("Inventory item %s (%s) is at negative stock %s", target_id, updated.nombre, updated.cantidad)

    if applied:
        try:
            catalog.commit()
        except SQLAlchemyError as exc:
            catalog.rollback()
            logs.append(f"Error committing stock deductions: {exc}")
            logs.append(f"Rolled back deductions for {', '.join(applied)}; stock was not changed")
            logger.error("Error committing stock deductions: %s", exc)
            failed.extend(applied)
            return ApplyReport(logs=logs, applied={}, negative_stock=[], failed=failed)

    return ApplyReport(logs=logs, applied=applied, negative_stock=negative, failed=failed)
