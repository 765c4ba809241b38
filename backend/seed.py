from __future__ import annotations

from backend.config_store import DEDUCTION_RULES_KEY, ConfigStore
from backend.db import SessionLocal
from backend.db_models import InventoryORM
from deduction_rules.models import Condition, Deduction, DeductionRule
from loader import dump_rules

DEMO_INVENTORY = [
    ("frasco-30ml", "Frasco 30ml", "Frasco", 120),
    ("frasco-100ml", "Frasco 100ml", "Frasco", 60),
    ("caja-regalo", "Caja de regalo", "Packaging", 40),
    ("esencia-oud-intenso", "Esencia Oud Intenso", "Esencia", 500),
    ("esencia-flor-blanca", "Esencia Flor Blanca", "Esencia", 350),
    ("etiqueta-oud-intenso", "Etiqueta Oud Intenso", "Etiqueta", 200),
    ("etiqueta-flor-blanca", "Etiqueta Flor Blanca", "Etiqueta", 200),
]

DEMO_RULES = [
    DeductionRule(
        id="rule-30ml",
        name="Perfume 30ml",
        conditions=[Condition(field="botella", operator="contains", value="30ml")],
        deductions=[
            Deduction(type="fixed", inventario_id="frasco-30ml", quantity=1),
            Deduction(type="dynamic_essence", quantity=15),
            Deduction(type="dynamic_label", quantity=1),
        ],
    ),
    DeductionRule(
        id="rule-100ml-sin-envase",
        name="Perfume 100ml sin devolución de envase",
        conditions=[
            Condition(field="botella", operator="contains", value="100ml"),
            Condition(field="devolvio_envase", operator="eq", value="No"),
        ],
        deductions=[
            Deduction(type="fixed", inventario_id="frasco-100ml", quantity=1),
            Deduction(type="dynamic_essence", quantity=50),
        ],
    ),
]


def seed_demo_data() -> None:
    """Seed demo inventory and a sample rule set if they are missing."""
    with SessionLocal() as db:
        if not db.query(InventoryORM).first():
            for item_id, nombre, tipo, cantidad in DEMO_INVENTORY:
                db.add(InventoryORM(id=item_id, nombre=nombre, tipo=tipo, cantidad=cantidad))
            db.commit()

        store = ConfigStore(db)
        if store.get_entry(DEDUCTION_RULES_KEY) is None:
            store.put(DEDUCTION_RULES_KEY, dump_rules(DEMO_RULES))
