from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from sqlalchemy.orm import Session

from backend.db_models import ConfigurationORM
from deduction_rules.context import get_default_field_definitions, validate_field_definitions
from loader import RULES_CONFIG_KEY

logger = logging.getLogger(__name__)

DEDUCTION_RULES_KEY = RULES_CONFIG_KEY
FIELDS_CONFIG_KEY = os.getenv("FIELDS_CONFIG_KEY", "rules_fields_config")


class ConfigEntry(NamedTuple):
    key: str
    value: str
    version: int


class ConfigStore:
    """Versioned key/value configuration documents backed by the ``configuracion`` table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_entry(self, key: str) -> Optional[ConfigEntry]:
        row = self.db.get(ConfigurationORM, key)
        if row is None:
            return None
        return ConfigEntry(key=row.key, value=row.value, version=row.version)

    def get(self, key: str) -> Optional[str]:
        entry = self.get_entry(key)
        return entry.value if entry else None

    def put(self, key: str, value: str) -> ConfigEntry:
        """Insert or replace ``key`` and bump its version."""
        row = self.db.get(ConfigurationORM, key)
        if row is None:
            row = ConfigurationORM(key=key, value=value, version=1)
            self.db.add(row)
        else:
            row.value = value
            row.version = (row.version or 0) + 1
        self.db.commit()
        logger.info("Configuration %s stored at version %s", key, row.version)
        return ConfigEntry(key=row.key, value=row.value, version=row.version)

    def delete(self, key: str) -> bool:
        deleted = self.db.query(ConfigurationORM).filter(ConfigurationORM.key == key).delete()
        self.db.commit()
        return bool(deleted)


def load_field_definitions(store: ConfigStore) -> Tuple[str, List[Dict[str, Any]]]:
    """Return ``(source, fields)``: the configured catalogue when valid, the YAML defaults otherwise."""
    raw = store.get(FIELDS_CONFIG_KEY)
    if raw:
        try:
            return "configured", validate_field_definitions(json.loads(raw))
        except ValueError as exc:
            logger.warning("Ignoring invalid %s: %s", FIELDS_CONFIG_KEY, exc)
    return "default", get_default_field_definitions()
