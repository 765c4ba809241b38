"""FastAPI service around the sale-time inventory deduction engine.

Exposes the stored deduction rules (read, replace, lint), the inventory catalog and
the `/api/sales/deduct-stock` endpoint called by the cash register when a sale
completes.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

# Ensure the repo root (engine, loader, registry) is importable when deployed.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from engine import DeductionEngineError, deduct_stock_for_sale, load_rule_set  # noqa: E402
from loader import RuleConfigurationError, dump_rules, parse_rules  # noqa: E402
from registry import RuleRegistry  # noqa: E402
from backend.config_store import (  # noqa: E402
    DEDUCTION_RULES_KEY,
    FIELDS_CONFIG_KEY,
    ConfigStore,
    load_field_definitions,
)
from backend.db import get_db, init_db  # noqa: E402
from backend.inventory_store import InventoryCatalog  # noqa: E402
from backend.sale_items import build_sale_items, merge_sale_items  # noqa: E402
from backend.schemas import (  # noqa: E402
    FieldDefinition,
    FieldDefinitionsResponse,
    LintResponse,
    QuantityUpdate,
    RuleSetResponse,
    RuleSetStored,
    SaleDeductionRequest,
)
from backend.seed import seed_demo_data  # noqa: E402
from deduction_rules.context import validate_field_definitions  # noqa: E402
from deduction_rules.models import DeductionResult, InventoryRecord, RuleSet  # noqa: E402

logger = logging.getLogger("stockops-api")
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

app = FastAPI(title="StockOps Deduction Service")

allowed_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event() -> None:
    init_db()
    if os.getenv("SEED_DEMO_DATA", "true").lower() == "true":
        seed_demo_data()


def _load_rule_set_or_400(store: ConfigStore) -> Optional[RuleSet]:
    try:
        return load_rule_set(store, DEDUCTION_RULES_KEY)
    except RuleConfigurationError as exc:
        raise HTTPException(status_code=400, detail=f"Stored rules are invalid: {exc}") from exc


def _field_keys(store: ConfigStore) -> List[str]:
    _, fields = load_field_definitions(store)
    return [field["key"] for field in fields]


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/")
async def root() -> Dict[str, str]:
    return {"service": "stockops-backend", "status": "ok"}


@app.get("/api/config/deduction-rules", response_model=RuleSetResponse)
def get_deduction_rules(db: Session = Depends(get_db)) -> RuleSetResponse:
    rule_set = _load_rule_set_or_400(ConfigStore(db))
    if rule_set is None:
        return RuleSetResponse(key=DEDUCTION_RULES_KEY)
    return RuleSetResponse(key=rule_set.key, version=rule_set.version, rules=rule_set.rules)


@app.put("/api/config/deduction-rules", response_model=RuleSetStored)
def put_deduction_rules(payload: Any = Body(...), db: Session = Depends(get_db)) -> RuleSetStored:
    """Replace the ordered rule list; the response carries lint warnings for the new version."""
    try:
        rules = parse_rules(json.dumps(payload))
    except RuleConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    store = ConfigStore(db)
    entry = store.put(DEDUCTION_RULES_KEY, dump_rules(rules))
    registry = RuleRegistry(RuleSet(key=entry.key, version=entry.version, rules=rules))
    warnings = registry.lint(_field_keys(store))
    for warning in warnings:
        logger.warning("Rule lint (%s v%s): %s", entry.key, entry.version, warning)
    return RuleSetStored(key=entry.key, version=entry.version, rules_count=len(rules), warnings=warnings)


@app.get("/api/config/deduction-rules/lint", response_model=LintResponse)
def lint_deduction_rules(db: Session = Depends(get_db)) -> LintResponse:
    store = ConfigStore(db)
    rule_set = _load_rule_set_or_400(store)
    if rule_set is None:
        return LintResponse(key=DEDUCTION_RULES_KEY)
    warnings = RuleRegistry(rule_set).lint(_field_keys(store))
    return LintResponse(key=rule_set.key, version=rule_set.version, warnings=warnings)


@app.get("/api/config/field-definitions", response_model=FieldDefinitionsResponse)
def get_field_definitions(db: Session = Depends(get_db)) -> FieldDefinitionsResponse:
    source, fields = load_field_definitions(ConfigStore(db))
    return FieldDefinitionsResponse(source=source, fields=[FieldDefinition(**field) for field in fields])


@app.put("/api/config/field-definitions", response_model=FieldDefinitionsResponse)
def put_field_definitions(payload: Any = Body(...), db: Session = Depends(get_db)) -> FieldDefinitionsResponse:
    try:
        fields = validate_field_definitions(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    ConfigStore(db).put(FIELDS_CONFIG_KEY, json.dumps(fields, ensure_ascii=False))
    return FieldDefinitionsResponse(source="configured", fields=[FieldDefinition(**field) for field in fields])


@app.get("/api/inventory", response_model=List[InventoryRecord])
def list_inventory(tipo: Optional[List[str]] = Query(None), db: Session = Depends(get_db)) -> List[InventoryRecord]:
    catalog = InventoryCatalog(db)
    if tipo:
        return catalog.list_by_type(tipo)
    return catalog.list_all()


@app.get("/api/inventory/{inventory_id}", response_model=InventoryRecord)
def get_inventory_record(inventory_id: str, db: Session = Depends(get_db)) -> InventoryRecord:
    record = InventoryCatalog(db).get_by_id(inventory_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return record


@app.put("/api/inventory/{inventory_id}/quantity", response_model=InventoryRecord)
def set_inventory_quantity(inventory_id: str, payload: QuantityUpdate, db: Session = Depends(get_db)) -> InventoryRecord:
    record = InventoryCatalog(db).update_quantity(inventory_id, payload.cantidad)
    if record is None:
        raise HTTPException(status_code=404, detail="Inventory item not found")
    return record


@app.post("/api/sales/deduct-stock", response_model=DeductionResult, response_model_exclude_none=True)
def deduct_stock(payload: SaleDeductionRequest, db: Session = Depends(get_db)) -> DeductionResult:
    """Run the deduction engine for one completed sale.

    A rule configuration that cannot be parsed comes back as ``{"error": ...}``;
    the sale itself is never blocked, so every other problem is only logged.
    """
    items = merge_sale_items(list(payload.items) + build_sale_items(payload.lines, payload.providers))
    try:
        result = deduct_stock_for_sale(items, config_store=ConfigStore(db), catalog=InventoryCatalog(db))
    except DeductionEngineError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if result.error:
        logger.error("Stock deduction aborted: %s", result.error)
    return result
