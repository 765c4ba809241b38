"""Loader for the engine-wide YAML settings (dynamic types and field catalogue)."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml


CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "engine.yaml"

FIELD_TYPES = {"text", "number", "boolean", "select", "dynamic_select"}


def _validate_field_definition(idx: int, data: Any) -> None:
    """Validate that a single field definition has a key, a label and a known type."""
    if not isinstance(data, dict):
        raise ValueError(f"Field definition #{idx} must be a mapping.")
    missing = [name for name in ("key", "label", "type") if not data.get(name)]
    if missing:
        missing_keys = ", ".join(missing)
        raise ValueError(f"Field definition #{idx} missing required keys: {missing_keys}")
    if data["type"] not in FIELD_TYPES:
        raise ValueError(f"Field definition {data['key']!r} has unsupported type {data['type']!r}")


def _validate_dynamic_types(data: Any) -> None:
    if not isinstance(data, dict) or not data:
        raise ValueError("dynamic_types must be a non-empty mapping of deduction type -> inventory tipo.")
    for deduction_type, tipo in data.items():
        if not str(deduction_type).startswith("dynamic_"):
            raise ValueError(f"Dynamic deduction type must start with 'dynamic_': {deduction_type}")
        if not tipo:
            raise ValueError(f"Dynamic deduction type {deduction_type} has no inventory tipo.")


@lru_cache(maxsize=1)
def load_engine_config() -> Dict[str, Any]:
    """
    Load engine settings from config/engine.yaml.

    Returns a dict with keys:
      - "dynamic_types": deduction type -> inventory ``tipo`` it searches
      - "field_definitions": default rule condition fields
    """
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Engine config not found at {CONFIG_PATH}")
    with CONFIG_PATH.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    dynamic_types = raw.get("dynamic_types")
    _validate_dynamic_types(dynamic_types)
    fields = raw.get("field_definitions") or []
    for idx, field in enumerate(fields):
        _validate_field_definition(idx, field)
    return {"dynamic_types": dict(dynamic_types), "field_definitions": list(fields)}


def get_dynamic_types() -> Dict[str, str]:
    return dict(load_engine_config()["dynamic_types"])


def get_default_field_definitions() -> List[Dict[str, Any]]:
    return [dict(field) for field in load_engine_config()["field_definitions"]]


def validate_field_definitions(fields: Any) -> List[Dict[str, Any]]:
    """Validate an operator-supplied field catalogue and return it as a list of dicts."""
    if not isinstance(fields, list):
        raise ValueError("Field definitions must be a list.")
    for idx, field in enumerate(fields):
        _validate_field_definition(idx, field)
    return [dict(field) for field in fields]


def reload_caches() -> None:
    """Clear cached settings (useful for tests)."""
    load_engine_config.cache_clear()
