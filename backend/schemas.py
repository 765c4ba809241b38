from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from deduction_rules.models import DeductionRule, SaleLineItem


class FieldDefinition(BaseModel):
    key: str
    label: str
    type: str
    options: Optional[List[str]] = None
    source: Optional[str] = None


class FieldDefinitionsResponse(BaseModel):
    source: str  # "default" or "configured"
    fields: List[FieldDefinition]


class RuleSetResponse(BaseModel):
    key: str
    version: Optional[int] = None
    rules: List[DeductionRule] = Field(default_factory=list)


class RuleSetStored(BaseModel):
    key: str
    version: int
    rules_count: int
    warnings: List[str] = Field(default_factory=list)


class LintResponse(BaseModel):
    key: str
    version: Optional[int] = None
    warnings: List[str] = Field(default_factory=list)


class QuantityUpdate(BaseModel):
    cantidad: float


class SaleDeductionRequest(BaseModel):
    """Either ready-made sale line items or raw register order lines to normalise."""

    items: List[SaleLineItem] = Field(default_factory=list)
    lines: List[Dict[str, Any]] = Field(default_factory=list)
    providers: Dict[str, str] = Field(default_factory=dict)
