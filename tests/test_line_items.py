import pytest

from quotepro.errors import ValidationError
from quotepro.services.professions import (
    derive_unit_price,
    new_line_item,
    remove_line_item,
    update_line_item,
)


def _consistent(item):
    return abs(item.line_total - item.quantity * item.unit_price) < 1e-9


def test_new_row_defaults():
    item = new_line_item()
    assert item.quantity == 1
    assert item.unit_price == 0
    assert item.line_total == 0
    assert item.description == ""
    assert item.id
    assert new_line_item().id != item.id


def test_new_row_carries_profession_defaults():
    item = new_line_item("engineering")
    assert item.profession == "Engineering"
    assert item.attributes["revision_number"] == "Rev 0"
    assert item.attributes["risk_level"] == "Low"


@pytest.mark.parametrize("field,value", [("quantity", 3), ("unit_price", 19.99), ("quantity", 0.5)])
def test_quantity_and_price_edits_recompute_line_total(field, value):
    item = new_line_item()
    update_line_item(item, "unit_price", 10)
    update_line_item(item, field, value)
    assert _consistent(item)


def test_description_edit_keeps_total():
    item = new_line_item()
    update_line_item(item, "unit_price", 10)
    update_line_item(item, "description", "Site visit")
    assert item.description == "Site visit"
    assert item.line_total == 10


def test_line_total_cannot_be_set():
    with pytest.raises(ValidationError):
        update_line_item(new_line_item(), "line_total", 99)


def test_engineering_cost_formula():
    item = new_line_item("Engineering")
    update_line_item(item, "quantity", 2)
    update_line_item(item, "labor_hours", 10)
    update_line_item(item, "labor_rate", 500)
    update_line_item(item, "material_cost", 1200)
    update_line_item(item, "equipment_cost", 300)
    assert item.unit_price == pytest.approx(10 * 500 + 1200 + 300)
    assert item.line_total == pytest.approx(2 * 6500)
    assert _consistent(item)


def test_legal_time_based_billing():
    item = new_line_item("Legal")
    update_line_item(item, "hourly_rate", 2500)
    update_line_item(item, "time_spent", 1.5)
    assert item.quantity == 1.5
    assert item.unit_price == 2500
    assert item.line_total == pytest.approx(3750)


def test_accounting_folds_line_vat_into_unit_price():
    item = new_line_item("Accounting")
    update_line_item(item, "rate", 1000)
    assert item.attributes["vat_rate"] == 15.0
    assert item.unit_price == pytest.approx(1150)
    assert item.attributes["vat_amount"] == pytest.approx(150)
    update_line_item(item, "quantity", 2)
    assert item.line_total == pytest.approx(2300)
    assert _consistent(item)


def test_medical_has_no_formula():
    item = new_line_item("Medical")
    update_line_item(item, "unit_price", 450)
    update_line_item(item, "diagnosis_code", "Z00.00")
    assert item.unit_price == 450
    assert item.attributes["diagnosis_code"] == "Z00.00"


def test_derive_on_general_row_only_recalculates():
    item = new_line_item()
    item.quantity, item.unit_price, item.line_total = 3, 7, 0
    derive_unit_price(item)
    assert item.line_total == 21


def test_remove_is_unconditional():
    only = new_line_item()
    assert remove_line_item([only], only.id) == []
    other = new_line_item()
    assert remove_line_item([only, other], "missing") == [only, other]
