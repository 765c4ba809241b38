from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


AttributeValue = Union[bool, int, float, str]


class Condition(BaseModel):
    """A single ``field <operator> value`` test against a sale line item."""

    field: str
    operator: str
    value: Any


class Deduction(BaseModel):
    """An inventory decrement applied per sold unit when a rule matches."""

    type: str
    inventario_id: Optional[str] = None
    quantity: float


class DeductionRule(BaseModel):
    """Named condition set plus the deductions applied when every condition holds."""

    id: str
    name: str = ""
    conditions: List[Condition]
    deductions: List[Deduction]


class RuleSet(BaseModel):
    """Ordered rules as stored under one configuration key, with the stored version."""

    key: str
    version: Optional[int] = None
    rules: List[DeductionRule] = Field(default_factory=list)


class SaleLineItem(BaseModel):
    """One distinct product sold within a sale, already quantity-aggregated."""

    model_config = ConfigDict(populate_by_name=True)

    perfume_name: str = Field(alias="perfumeName")
    gender: str = ""
    quantity: float = 1
    category: Optional[str] = None
    provider: Optional[str] = None
    bottle_type: Optional[str] = Field(default=None, alias="bottleType")
    returned_bottle: bool = Field(default=False, alias="returnedBottle")
    attributes: Dict[str, AttributeValue] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_dynamic_attributes(cls, data: Any) -> Any:
        # Keys outside the declared fields land in ``attributes``.
        if not isinstance(data, dict):
            return data
        known = set()
        for name, info in cls.model_fields.items():
            known.add(name)
            if info.alias:
                known.add(info.alias)
        extras = {k: v for k, v in data.items() if k not in known and v is not None}
        if not extras:
            return data
        payload = {k: v for k, v in data.items() if k in known}
        attributes = dict(extras)
        attributes.update(payload.get("attributes") or {})
        payload["attributes"] = attributes
        return payload

    def get_attribute(self, key: str) -> Optional[AttributeValue]:
        """Return a dynamic attribute, or None when the item does not carry it."""
        return self.attributes.get(key)


class InventoryRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    nombre: str
    tipo: Optional[str] = None
    cantidad: float = 0


class DeductionResult(BaseModel):
    """Outcome of one engine invocation; unset keys are dropped from responses."""

    success: Optional[bool] = None
    message: Optional[str] = None
    error: Optional[str] = None
    logs: Optional[List[str]] = None
    rules_version: Optional[int] = None
    demand: Optional[Dict[str, float]] = None
    negative_stock: Optional[List[str]] = None

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
