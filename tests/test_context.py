import pytest

from deduction_rules.context import (
    get_default_field_definitions,
    get_dynamic_types,
    load_engine_config,
    validate_field_definitions,
)


def test_dynamic_types_map_to_inventory_classes():
    types = get_dynamic_types()
    assert types["dynamic_essence"] == "Esencia"
    assert types["dynamic_label"] == "Etiqueta"


def test_default_field_definitions_cover_legacy_fields():
    keys = [field["key"] for field in get_default_field_definitions()]
    assert keys == ["genero", "nombre", "categoria", "proveedor", "botella", "devolvio_envase"]


def test_load_engine_config_caches():
    first = load_engine_config()
    second = load_engine_config()
    assert first is second


def test_validate_field_definitions_rejects_unknown_type():
    with pytest.raises(ValueError) as excinfo:
        validate_field_definitions([{"key": "tamano", "label": "Tamaño", "type": "color"}])
    assert "tamano" in str(excinfo.value)


def test_validate_field_definitions_requires_list():
    with pytest.raises(ValueError):
        validate_field_definitions({"key": "tamano"})
