"""In-memory registry over one versioned deduction rule set."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Mapping, Optional, Sequence

from deduction_rules.context import get_dynamic_types
from deduction_rules.core import FIXED, ITEM_FIELDS, KNOWN_FIELDS, OPERATORS
from deduction_rules.models import DeductionRule, RuleSet


class RuleRegistry:
    """Keeps rules in declaration order and answers questions the engine and the lint ask."""

    def __init__(self, rule_set: RuleSet, dynamic_types: Optional[Mapping[str, str]] = None) -> None:
        self._rule_set = rule_set
        self._dynamic_types = dict(dynamic_types) if dynamic_types is not None else get_dynamic_types()
        self._rules_by_id = {rule.id: rule for rule in rule_set.rules}

    @property
    def key(self) -> str:
        return self._rule_set.key

    @property
    def version(self) -> Optional[int]:
        return self._rule_set.version

    @property
    def rules(self) -> List[DeductionRule]:
        return list(self._rule_set.rules)

    @property
    def dynamic_types(self) -> Mapping[str, str]:
        return dict(self._dynamic_types)

    def __len__(self) -> int:
        return len(self._rule_set.rules)

    def get_rule(self, rule_id: str) -> Optional[DeductionRule]:
        return self._rules_by_id.get(rule_id)

    def has_dynamic_deductions(self) -> bool:
        return any(d.type in self._dynamic_types for rule in self._rule_set.rules for d in rule.deductions)

    def dynamic_inventory_types(self) -> Sequence[str]:
        """Inventory ``tipo`` values to pre-fetch for fuzzy resolution."""
        return tuple(sorted(set(self._dynamic_types.values())))

    def lint(self, field_keys: Optional[Iterable[str]] = None) -> List[str]:
        """Report configuration smells that would otherwise fail silently at sale time."""
        allowed_fields = set(KNOWN_FIELDS) | set(ITEM_FIELDS)
        if field_keys is not None:
            allowed_fields.update(field_keys)

        warnings: List[str] = []
        id_counts = Counter(rule.id for rule in self._rule_set.rules)
        for rule_id, count in sorted(id_counts.items()):
            if count > 1:
                warnings.append(f"Rule id {rule_id!r} is used by {count} rules.")

        for rule in self._rule_set.rules:
            label = f'Rule "{rule.name or rule.id}"'
            if not rule.deductions:
                warnings.append(f"{label} has no deductions.")
            for cond in rule.conditions:
                if cond.field not in allowed_fields:
                    warnings.append(f"{label} uses unknown field {cond.field!r}; it only matches items carrying it.")
                if cond.operator not in OPERATORS:
                    warnings.append(f"{label} uses unsupported operator {cond.operator!r}; the condition never matches.")
            for ded in rule.deductions:
                if ded.type == FIXED:
                    if not ded.inventario_id:
                        warnings.append(f"{label} has a fixed deduction without inventario_id.")
                elif ded.type in self._dynamic_types:
                    if ded.inventario_id:
                        warnings.append(f"{label} sets inventario_id on a {ded.type} deduction; it is ignored.")
                else:
                    warnings.append(f"{label} has unknown deduction type {ded.type!r}.")
                if ded.quantity <= 0:
                    warnings.append(f"{label} has a non-positive deduction quantity ({ded.quantity}).")
        return warnings
