from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from deduction_rules.models import SaleLineItem

NO_PROVIDER = "Sin proveedor"
UNKNOWN_PERFUME = "Desconocido"

# "Botella (1L) (devolvió envase)" -> "Botella (1L)"
_RETURN_SUFFIX_RE = re.compile(r"\s*\(devolvi.*?\)", re.IGNORECASE)


def _nested_name(line: Mapping[str, Any], key: str) -> str:
    value = line.get(key)
    if isinstance(value, Mapping):
        return str(value.get("nombre") or "").strip()
    return ""


def _provider_name(line: Mapping[str, Any], providers: Mapping[str, str]) -> str:
    name = _nested_name(line, "proveedores")
    if name and name != "-":
        return name
    perfume = line.get("perfume") or {}
    provider_id = perfume.get("proveedor_id") if isinstance(perfume, Mapping) else None
    if provider_id:
        return providers.get(str(provider_id)) or NO_PROVIDER
    return NO_PROVIDER


def _category(line: Mapping[str, Any]) -> str:
    name = _nested_name(line, "insumos_categorias")
    if name:
        return name
    perfume = line.get("perfume") or {}
    if isinstance(perfume, Mapping) and perfume.get("categoria"):
        return str(perfume["categoria"])
    return str(line.get("categoria") or "")


def split_bottle_return(raw: Any, flagged: bool = False) -> Tuple[str, bool]:
    """Strip a "(devolvió ...)" marker from the bottle type and report whether it was present."""
    bottle = raw if isinstance(raw, str) else ""
    returned = flagged is True
    if "devolvi" in bottle.lower():
        returned = True
        bottle = _RETURN_SUFFIX_RE.sub("", bottle, count=1).replace(" - ", "", 1).strip()
    return bottle, returned


def build_sale_item(line: Mapping[str, Any], providers: Optional[Mapping[str, str]] = None) -> SaleLineItem:
    """Normalise one register order line into a SaleLineItem."""
    perfume = line.get("perfume") or {}
    if not isinstance(perfume, Mapping):
        perfume = {}
    bottle, returned = split_bottle_return(line.get("envase") or line.get("frascoLP") or "", line.get("devolvio_envase"))
    quantity = line.get("cantidad") or 1
    attributes = line.get("atributos") or {}
    return SaleLineItem(
        perfume_name=perfume.get("nombre") or line.get("nombre") or UNKNOWN_PERFUME,
        gender=perfume.get("genero") or line.get("genero") or "",
        quantity=float(quantity),
        category=_category(line),
        provider=_provider_name(line, providers or {}),
        bottle_type=bottle,
        returned_bottle=returned,
        attributes={k: v for k, v in dict(attributes).items() if v is not None},
    )


def _merge_key(item: SaleLineItem) -> Tuple[Any, ...]:
    return (
        item.perfume_name,
        item.gender,
        item.category,
        item.provider,
        item.bottle_type,
        item.returned_bottle,
        tuple(sorted(item.attributes.items(), key=lambda kv: kv[0])),
    )


def merge_sale_items(items: Iterable[SaleLineItem]) -> List[SaleLineItem]:
    """Merge identical products by summing their quantity, keeping first-seen order."""
    merged: Dict[Tuple[Any, ...], SaleLineItem] = {}
    for item in items:
        key = _merge_key(item)
        if key in merged:
            existing = merged[key]
            merged[key] = existing.model_copy(update={"quantity": existing.quantity + item.quantity})
        else:
            merged[key] = item
    return list(merged.values())


def build_sale_items(lines: Iterable[Mapping[str, Any]], providers: Optional[Mapping[str, str]] = None) -> List[SaleLineItem]:
    """Normalise order lines and merge identical products."""
    return merge_sale_items(build_sale_item(line, providers) for line in lines)
