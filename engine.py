"""Sale-time inventory deduction engine."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from backend.stock_applier import apply_demand
from deduction_rules.core import aggregate_demand, sort_candidates
from deduction_rules.models import DeductionResult, InventoryRecord, RuleSet, SaleLineItem
from loader import RULES_CONFIG_KEY, RuleConfigurationError, parse_rule_set
from registry import RuleRegistry

logger = logging.getLogger(__name__)

# Invocation states.
RULES_LOADED = "rules_loaded"
DEMAND_AGGREGATED = "demand_aggregated"
APPLYING = "applying_deductions"
DONE = "done"


class DeductionEngineError(Exception):
    """Raised when sale line items cannot be evaluated."""


def coerce_items(items: Iterable[Union[SaleLineItem, Mapping[str, Any]]]) -> List[SaleLineItem]:
    coerced: List[SaleLineItem] = []
    for idx, item in enumerate(items):
        if isinstance(item, SaleLineItem):
            coerced.append(item)
            continue
        if not isinstance(item, Mapping):
            raise DeductionEngineError(f"Sale line item #{idx} must be a mapping")
        try:
            coerced.append(SaleLineItem.model_validate(dict(item)))
        except ValidationError as exc:
            raise DeductionEngineError(f"Sale line item #{idx} is invalid: {exc}") from exc
    return coerced


class DeductionEngine:
    """Evaluate one rule set against the line items of a sale and apply the resulting decrements."""

    def __init__(self, registry: RuleRegistry) -> None:
        self.registry = registry
        self.state = RULES_LOADED

    def load_candidates(self, catalog, logs: List[str]) -> List[InventoryRecord]:
        """Pre-fetch the inventory classes searched by dynamic deductions, sorted by id."""
        if not self.registry.has_dynamic_deductions():
            return []
        try:
            records = catalog.list_by_type(self.registry.dynamic_inventory_types())
        except SQLAlchemyError as exc:
            logs.append(f"Error loading inventory for dynamic matching: {exc}")
            logger.error("Error loading inventory for dynamic matching: %s", exc)
            return []
        return sort_candidates(records)

    def build_demand(self, items: Iterable[SaleLineItem], catalog, logs: Optional[List[str]] = None) -> Dict[str, float]:
        if logs is None:
            logs = []
        candidates = self.load_candidates(catalog, logs)
        demand, _ = aggregate_demand(items, self.registry.rules, candidates, self.registry.dynamic_types, logs)
        self.state = DEMAND_AGGREGATED
        return demand

    def run(self, items: Iterable[SaleLineItem], catalog) -> DeductionResult:
        logs: List[str] = []
        demand = self.build_demand(items, catalog, logs)
        self.state = APPLYING
        report = apply_demand(demand, catalog, logs)
        self.state = DONE
        logger.info(
            "Applied %d of %d stock deductions with rules %s v%s",
            len(report.applied),
            len(demand),
            self.registry.key,
            self.registry.version,
        )
        return DeductionResult(
            success=True,
            logs=report.logs,
            rules_version=self.registry.version,
            demand=demand,
            negative_stock=report.negative_stock,
        )


def load_rule_set(config_store, key: str = RULES_CONFIG_KEY) -> Optional[RuleSet]:
    """Read and parse the stored rules once; None when nothing is stored under ``key``."""
    entry = config_store.get_entry(key)
    if entry is None or not entry.value:
        return None
    return parse_rule_set(key, entry.value, version=entry.version)


def deduct_stock_for_sale(
    items: Iterable[Union[SaleLineItem, Mapping[str, Any]]],
    *,
    config_store,
    catalog,
    key: str = RULES_CONFIG_KEY,
) -> DeductionResult:
    """
    Entry point called when a sale completes.

    Only a rule configuration that cannot be parsed is reported as an error; every
    other anomaly ends up in the returned log transcript.
    """
    sale_items = coerce_items(items)
    try:
        rule_set = load_rule_set(config_store, key)
    except RuleConfigurationError as exc:
        logger.error("Error parsing rules %s: %s", key, exc)
        return DeductionResult(error="Invalid rules configuration")

    if rule_set is None:
        return DeductionResult(success=True, message="No rules defined")
    if not rule_set.rules:
        return DeductionResult(success=True, message="No active rules")

    engine = DeductionEngine(RuleRegistry(rule_set))
    return engine.run(sale_items, catalog)
