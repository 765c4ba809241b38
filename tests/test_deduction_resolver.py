from deduction_rules.core import find_dynamic_target, resolve_deductions, sort_candidates
from deduction_rules.models import Deduction, DeductionRule, InventoryRecord, SaleLineItem

DYNAMIC_TYPES = {"dynamic_essence": "Esencia", "dynamic_label": "Etiqueta"}


def _rule(*deductions: Deduction) -> DeductionRule:
    return DeductionRule(id="r1", name="Regla", conditions=[], deductions=list(deductions))


def _item(name: str = "Oud Intenso", quantity: float = 2) -> SaleLineItem:
    return SaleLineItem(perfume_name=name, gender="masculino", quantity=quantity)


def test_fixed_deduction_uses_id_verbatim_and_multiplies_quantity():
    logs = []
    resolved = resolve_deductions(
        _rule(Deduction(type="fixed", inventario_id="does-not-exist", quantity=1.5)),
        _item(quantity=2),
        [],
        DYNAMIC_TYPES,
        logs,
    )
    assert resolved == [("does-not-exist", 3.0)]
    assert logs == []


def test_fixed_deduction_without_id_resolves_to_nothing():
    logs = []
    resolved = resolve_deductions(_rule(Deduction(type="fixed", quantity=1)), _item(), [], DYNAMIC_TYPES, logs)
    assert resolved == []
    assert any("no inventario_id" in line for line in logs)


def test_dynamic_essence_takes_first_match_in_id_order():
    candidates = sort_candidates(
        [
            InventoryRecord(id="e2", nombre="Oud Intenso Deluxe", tipo="Esencia", cantidad=10),
            InventoryRecord(id="e1", nombre="Oud Intenso", tipo="Esencia", cantidad=10),
        ]
    )
    logs = []
    resolved = resolve_deductions(
        _rule(Deduction(type="dynamic_essence", quantity=10)), _item(quantity=1), candidates, DYNAMIC_TYPES, logs
    )
    assert resolved == [("e1", 10)]
    assert any("2 Esencia records match" in line for line in logs)


def test_dynamic_label_only_searches_labels():
    candidates = [
        InventoryRecord(id="a", nombre="Esencia Flor Blanca", tipo="Esencia"),
        InventoryRecord(id="b", nombre="Etiqueta flor blanca", tipo="Etiqueta"),
    ]
    resolved = resolve_deductions(
        _rule(Deduction(type="dynamic_label", quantity=1)), _item("Flor Blanca", 3), candidates, DYNAMIC_TYPES, []
    )
    assert resolved == [("b", 3)]


def test_dynamic_miss_logs_warning_and_produces_nothing():
    logs = []
    candidates = [InventoryRecord(id="l1", nombre="Etiqueta Oud", tipo="Etiqueta")]
    resolved = resolve_deductions(
        _rule(Deduction(type="dynamic_essence", quantity=1)), _item("Sin Match"), candidates, DYNAMIC_TYPES, logs
    )
    assert resolved == []
    assert logs == ["Warning: Could not find Esencia for Sin Match"]


def test_unknown_deduction_type_is_skipped_with_warning():
    logs = []
    resolved = resolve_deductions(_rule(Deduction(type="percentage", quantity=1)), _item(), [], DYNAMIC_TYPES, logs)
    assert resolved == []
    assert "Unknown deduction type" in logs[0]


def test_empty_perfume_name_never_matches():
    candidates = [InventoryRecord(id="e1", nombre="Oud", tipo="Esencia")]
    assert find_dynamic_target("", "Esencia", candidates) == (None, 0)


def test_perfume_name_is_matched_untrimmed():
    candidates = [InventoryRecord(id="e1", nombre="Esencia Oud Intenso", tipo="Esencia")]
    assert find_dynamic_target("Intenso ", "Esencia", candidates) == (None, 0)
    assert find_dynamic_target("Oud ", "Esencia", candidates)[0].id == "e1"


def test_resolution_follows_declaration_order():
    rule = _rule(
        Deduction(type="fixed", inventario_id="b", quantity=1),
        Deduction(type="fixed", inventario_id="a", quantity=1),
    )
    resolved = resolve_deductions(rule, _item(quantity=1), [], DYNAMIC_TYPES, [])
    assert [target for target, _ in resolved] == ["b", "a"]
