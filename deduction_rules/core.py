"""Deterministic matching, resolution and aggregation of sale-time stock deductions."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from deduction_rules.models import Condition, Deduction, DeductionRule, InventoryRecord, SaleLineItem

logger = logging.getLogger(__name__)

# Legacy condition fields mapped onto SaleLineItem attributes.
LEGACY_FIELDS: Dict[str, str] = {
    "genero": "gender",
    "nombre": "perfume_name",
    "categoria": "category",
    "proveedor": "provider",
    "botella": "bottle_type",
}
RETURNED_BOTTLE_FIELD = "devolvio_envase"
KNOWN_FIELDS = frozenset(LEGACY_FIELDS) | {RETURNED_BOTTLE_FIELD}


def _item_fields() -> Dict[str, str]:
    """Declared SaleLineItem fields keyed by attribute name and by wire alias."""
    fields: Dict[str, str] = {}
    for name, info in SaleLineItem.model_fields.items():
        if name == "attributes":
            continue
        fields[name] = name
        if info.alias:
            fields[info.alias] = name
    return fields


ITEM_FIELDS = _item_fields()

OPERATORS = ("eq", "contains")
FIXED = "fixed"


def as_text(value: Any) -> str:
    """Coerce a condition operand to the lower-case text it is compared as."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).lower()


def format_quantity(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return str(value)


def resolve_field_value(item: SaleLineItem, field: str) -> Any:
    """Look up ``field`` on the item: legacy names, then declared fields, then dynamic attributes."""
    if field == RETURNED_BOTTLE_FIELD:
        return "Si" if item.returned_bottle else "No"
    attr = LEGACY_FIELDS.get(field) or ITEM_FIELDS.get(field)
    if attr is not None:
        return getattr(item, attr)
    return item.get_attribute(field)


def condition_matches(item: SaleLineItem, condition: Condition) -> bool:
    item_value = as_text(resolve_field_value(item, condition.field))
    expected = as_text(condition.value)
    if condition.operator == "eq":
        return item_value == expected
    if condition.operator == "contains":
        return expected in item_value
    return False


def matches(item: SaleLineItem, conditions: Iterable[Condition]) -> bool:
    """A rule matches when every one of its conditions holds (logical AND)."""
    return all(condition_matches(item, cond) for cond in conditions)


def sort_candidates(records: Iterable[InventoryRecord]) -> List[InventoryRecord]:
    """Order dynamic-lookup candidates by id so first-match resolution is stable."""
    return sorted(records, key=lambda record: str(record.id))


def find_dynamic_target(
    perfume_name: str,
    tipo: str,
    candidates: Sequence[InventoryRecord],
) -> Tuple[Optional[InventoryRecord], int]:
    """
    Return the first candidate of class ``tipo`` whose name contains the perfume
    name (case-insensitive), plus how many candidates matched in total.
    """
    needle = (perfume_name or "").lower()
    if not needle:
        return None, 0
    found: Optional[InventoryRecord] = None
    count = 0
    for record in candidates:
        if record.tipo != tipo:
            continue
        if needle in (record.nombre or "").lower():
            count += 1
            if found is None:
                found = record
    return found, count


def _resolve_target(
    rule: DeductionRule,
    deduction: Deduction,
    item: SaleLineItem,
    candidates: Sequence[InventoryRecord],
    dynamic_types: Mapping[str, str],
    logs: List[str],
) -> Optional[str]:
    if deduction.type == FIXED:
        if not deduction.inventario_id:
            logs.append(f'Warning: Fixed deduction in rule "{rule.name}" has no inventario_id')
            logger.warning("Rule %s has a fixed deduction without inventario_id", rule.id)
            return None
        return deduction.inventario_id

    tipo = dynamic_types.get(deduction.type)
    if tipo is None:
        logs.append(f'Warning: Unknown deduction type "{deduction.type}" in rule "{rule.name}"')
        logger.warning("Rule %s has unknown deduction type %r", rule.id, deduction.type)
        return None

    found, count = find_dynamic_target(item.perfume_name, tipo, candidates)
    if found is None:
        logs.append(f"Warning: Could not find {tipo} for {item.perfume_name}")
        logger.warning("No %s inventory record matches %r", tipo, item.perfume_name)
        return None
    if count > 1:
        logs.append(f"Note: {count} {tipo} records match {item.perfume_name}; using {found.nombre} ({found.id})")
    return found.id


def resolve_deductions(
    rule: DeductionRule,
    item: SaleLineItem,
    candidates: Sequence[InventoryRecord],
    dynamic_types: Mapping[str, str],
    logs: List[str],
) -> List[Tuple[str, float]]:
    """Resolve a matched rule's deductions to ``(target_id, amount)`` pairs in declaration order."""
    resolved: List[Tuple[str, float]] = []
    for deduction in rule.deductions:
        target_id = _resolve_target(rule, deduction, item, candidates, dynamic_types, logs)
        if target_id is None:
            continue
        resolved.append((target_id, deduction.quantity * item.quantity))
    return resolved


def aggregate_demand(
    items: Iterable[SaleLineItem],
    rules: Sequence[DeductionRule],
    candidates: Sequence[InventoryRecord],
    dynamic_types: Mapping[str, str],
    logs: Optional[List[str]] = None,
) -> Tuple[Dict[str, float], List[str]]:
    """
    Build the demand map for a whole sale.

    Each item keeps its own dedup set: a target already charged for the item by an
    earlier rule is skipped, while the same target reached from different items
    accumulates.
    """
    if logs is None:
        logs = []
    demand: Dict[str, float] = {}
    for item in items:
        deducted: Set[str] = set()
        for rule in rules:
            if not matches(item, rule.conditions):
                continue
            logs.append(f'Rule "{rule.name}" matched for {item.perfume_name}')
            for target_id, amount in resolve_deductions(rule, item, candidates, dynamic_types, logs):
                if target_id in deducted:
                    logs.append(
                        f"Skipping deduction of {target_id} (already deducted by another rule for this item)"
                    )
                    continue
                demand[target_id] = demand.get(target_id, 0) + amount
                deducted.add(target_id)
    return demand, logs
