"""Sale-time inventory deduction rules package."""

from .core import aggregate_demand, condition_matches, matches, resolve_deductions, resolve_field_value
from .models import Condition, Deduction, DeductionRule, InventoryRecord, RuleSet, SaleLineItem

__all__ = [
    "Condition",
    "Deduction",
    "DeductionRule",
    "InventoryRecord",
    "RuleSet",
    "SaleLineItem",
    "aggregate_demand",
    "condition_matches",
    "matches",
    "resolve_deductions",
    "resolve_field_value",
]
