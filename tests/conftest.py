import os
from contextlib import nullcontext
from typing import Dict, Iterable, List, Optional, Tuple

import pytest
from sqlalchemy.exc import SQLAlchemyError

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_stockops.db")
os.environ.setdefault("SEED_DEMO_DATA", "false")

from backend.config_store import ConfigEntry  # noqa: E402
from deduction_rules.models import InventoryRecord  # noqa: E402


class FakeCatalog:
    """In-memory stand-in for InventoryCatalog that records every call."""

    def __init__(
        self, records: Iterable[InventoryRecord] = (), fail_on: Iterable[str] = (), fail_commit: bool = False
    ) -> None:
        self.records: Dict[str, InventoryRecord] = {r.id: r.model_copy() for r in records}
        self.fail_on = set(fail_on)
        self.list_calls: List[Tuple[str, ...]] = []
        self.reads: List[str] = []
        self.writes: List[Tuple[str, float]] = []
        self.fail_commit = fail_commit
        self.commits = 0
        self.rollbacks = 0

    def list_by_type(self, types):
        wanted = tuple(types)
        self.list_calls.append(wanted)
        return [r.model_copy() for r in self.records.values() if r.tipo in wanted]

    def get_by_id(self, inventory_id, lock=False):
        self.reads.append(inventory_id)
        record = self.records.get(inventory_id)
        return record.model_copy() if record else None

    def decrement(self, inventory_id, amount):
        if inventory_id in self.fail_on:
            raise SQLAlchemyError("write rejected")
        record = self.records.get(inventory_id)
        if record is None:
            return None
        record.cantidad -= amount
        self.writes.append((inventory_id, amount))
        return record.model_copy()

    def savepoint(self):
        return nullcontext()

    def commit(self):
        if self.fail_commit:
            raise SQLAlchemyError("commit rejected")
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class FakeConfigStore:
    def __init__(self, value: Optional[str] = None, version: int = 1, key: str = "sales_deduction_rules") -> None:
        self.value = value
        self.version = version
        self.key = key
        self.reads = 0

    def get_entry(self, key):
        self.reads += 1
        if key != self.key or self.value is None:
            return None
        return ConfigEntry(key=key, value=self.value, version=self.version)

    def get(self, key):
        entry = self.get_entry(key)
        return entry.value if entry else None


@pytest.fixture
def make_catalog():
    return FakeCatalog


@pytest.fixture
def make_config_store():
    return FakeConfigStore


def record(id: str, nombre: str, tipo: Optional[str] = None, cantidad: float = 0) -> InventoryRecord:
    return InventoryRecord(id=id, nombre=nombre, tipo=tipo, cantidad=cantidad)


@pytest.fixture
def make_record():
    return record
