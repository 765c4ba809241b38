"""Parsing of the serialized rule configuration into a validated RuleSet."""

from __future__ import annotations

import json
import os
from typing import Any, List, Optional

from pydantic import ValidationError

from deduction_rules.models import DeductionRule, RuleSet

RULES_CONFIG_KEY = os.getenv("DEDUCTION_RULES_KEY", "sales_deduction_rules")


class RuleConfigurationError(Exception):
    """Raised when a stored rule configuration cannot be parsed."""


def _decode(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise RuleConfigurationError(f"Rule configuration is not valid JSON: {exc}") from exc


def _normalize_rules(raw: Any) -> List[Any]:
    """Accept either a bare list of rules or a ``{"rules": [...]}`` wrapper."""
    if isinstance(raw, dict):
        raw = raw.get("rules")
    if not isinstance(raw, list):
        raise RuleConfigurationError("Rule configuration must be a list of rules.")
    return raw


def parse_rules(raw: str) -> List[DeductionRule]:
    payload = _normalize_rules(_decode(raw))
    rules: List[DeductionRule] = []
    for idx, item in enumerate(payload):
        try:
            rules.append(DeductionRule.model_validate(item))
        except ValidationError as exc:
            raise RuleConfigurationError(f"Rule #{idx} is invalid: {exc}") from exc
    return rules


def parse_rule_set(key: str, raw: str, version: Optional[int] = None) -> RuleSet:
    """Parse the stored JSON document into an explicit, versioned RuleSet value."""
    return RuleSet(key=key, version=version, rules=parse_rules(raw))


def dump_rules(rules: List[DeductionRule]) -> str:
    return json.dumps([rule.model_dump(exclude_none=True) for rule in rules], ensure_ascii=False)
