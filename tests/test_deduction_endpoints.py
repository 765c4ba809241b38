import pytest
from fastapi.testclient import TestClient

from backend import app as app_module
from backend.db import SessionLocal, init_db
from backend.db_models import ConfigurationORM, InventoryORM
from backend.seed import seed_demo_data

client = TestClient(app_module.app)

RULES = [
    {
        "id": "r1",
        "name": "Frasco 30ml",
        "conditions": [{"field": "botella", "operator": "contains", "value": "30ml"}],
        "deductions": [
            {"type": "fixed", "inventario_id": "frasco-30ml", "quantity": 1},
            {"type": "dynamic_essence", "quantity": 15},
        ],
    }
]


@pytest.fixture(autouse=True)
def setup_db():
    init_db()
    with SessionLocal() as db:
        db.query(InventoryORM).delete()
        db.query(ConfigurationORM).delete()
        db.commit()
    seed_demo_data()
    yield


def test_health():
    assert client.get("/health").json() == {"status": "ok"}


def test_seeded_rules_are_readable():
    resp = client.get("/api/config/deduction-rules")
    assert resp.status_code == 200
    data = resp.json()
    assert data["key"] == "sales_deduction_rules"
    assert data["version"] == 1
    assert [r["id"] for r in data["rules"]] == ["rule-30ml", "rule-100ml-sin-envase"]


def test_put_rules_bumps_version_and_lints():
    rules = RULES + [
        {
            "id": "r2",
            "name": "Tamaño",
            "conditions": [{"field": "tamano", "operator": "eq", "value": "grande"}],
            "deductions": [{"type": "fixed", "quantity": 1}],
        }
    ]
    resp = client.put("/api/config/deduction-rules", json=rules)
    assert resp.status_code == 200
    data = resp.json()
    assert data["version"] == 2
    assert data["rules_count"] == 2
    assert any("tamano" in w for w in data["warnings"])

    lint = client.get("/api/config/deduction-rules/lint").json()
    assert lint["version"] == 2
    assert lint["warnings"] == data["warnings"]


def test_put_invalid_rules_is_rejected():
    resp = client.put("/api/config/deduction-rules", json={"rules": "nope"})
    assert resp.status_code == 400


def test_field_definitions_can_be_configured():
    assert client.get("/api/config/field-definitions").json()["source"] == "default"
    fields = [{"key": "tamano", "label": "Tamaño", "type": "select", "options": ["chico", "grande"]}]
    resp = client.put("/api/config/field-definitions", json=fields)
    assert resp.status_code == 200
    assert resp.json()["source"] == "configured"
    assert client.put("/api/config/field-definitions", json=[{"key": "x"}]).status_code == 400


def test_inventory_endpoints():
    essences = client.get("/api/inventory", params={"tipo": "Esencia"}).json()
    assert {r["tipo"] for r in essences} == {"Esencia"}
    assert client.get("/api/inventory/ghost").status_code == 404
    resp = client.put("/api/inventory/frasco-30ml/quantity", json={"cantidad": 5})
    assert resp.json()["cantidad"] == 5


def test_deduct_stock_for_sale_endpoint():
    client.put("/api/config/deduction-rules", json=RULES)
    body = {
        "items": [{"perfumeName": "Oud Intenso", "gender": "masculino", "quantity": 2, "bottleType": "Frasco 30ml"}],
        "lines": [{"nombre": "Flor Blanca", "genero": "Femenino", "cantidad": 1, "envase": "Frasco 30ml"}],
    }
    resp = client.post("/api/sales/deduct-stock", json=body)
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["rules_version"] == 2
    assert data["demand"] == {"frasco-30ml": 3, "esencia-oud-intenso": 30, "esencia-flor-blanca": 15}
    assert "error" not in data

    frasco = client.get("/api/inventory/frasco-30ml").json()
    assert frasco["cantidad"] == 117


def test_deduct_stock_reports_invalid_configuration():
    with SessionLocal() as db:
        row = db.get(ConfigurationORM, "sales_deduction_rules")
        row.value = "{broken"
        db.commit()
    resp = client.post("/api/sales/deduct-stock", json={"items": [{"perfumeName": "Oud Intenso", "quantity": 1}]})
    assert resp.status_code == 200
    assert resp.json() == {"error": "Invalid rules configuration"}
    assert client.get("/api/inventory/frasco-30ml").json()["cantidad"] == 120
    assert client.get("/api/config/deduction-rules").status_code == 400


def test_same_product_sent_as_item_and_line_is_deducted_once_per_rule():
    client.put("/api/config/deduction-rules", json=RULES)
    body = {
        "items": [
            {
                "perfumeName": "Oud Intenso",
                "gender": "Masculino",
                "quantity": 1,
                "category": "",
                "provider": "Sin proveedor",
                "bottleType": "Frasco 30ml",
            }
        ],
        "lines": [{"nombre": "Oud Intenso", "genero": "Masculino", "cantidad": 1, "envase": "Frasco 30ml"}],
    }
    data = client.post("/api/sales/deduct-stock", json=body).json()
    assert data["demand"] == {"frasco-30ml": 2, "esencia-oud-intenso": 30}
    assert sum(1 for line in data["logs"] if line.startswith('Rule "Frasco 30ml" matched')) == 1
