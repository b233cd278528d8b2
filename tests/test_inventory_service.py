# tests/test_inventory_service.py
import pytest

from factory_management.database.errors import NotFound, ValidationError


def test_create_item_validation(inventory, make_item):
    make_item("raw_material", code="SUGAR")
    with pytest.raises(ValidationError):
        inventory.create_item("SUGAR", "Sugar again", "raw_material")
    with pytest.raises(ValidationError):
        inventory.create_item("X", "X", "gadget")
    with pytest.raises(ValidationError):
        inventory.create_item("", "Blank code", "raw_material")
    with pytest.raises(ValidationError):
        inventory.create_item("NEG", "Negative cost", "raw_material", unit_cost=-1)
    with pytest.raises(NotFound):
        inventory.get_item(31337)


def test_opening_quantity_seeds_on_hand(inventory):
    item = inventory.create_item("OIL", "Oil", "raw_material", unit="L", opening_quantity=12, unit_cost=3)
    assert (item.opening_quantity, item.quantity, item.unit_cost, item.unit) == (12.0, 12.0, 3.0, "L")


def test_list_items_by_category(inventory, make_item):
    make_item("raw_material", code="R1")
    make_item("packaging_material", code="P1")
    assert [i.code for i in inventory.list_items("raw_material")] == ["R1"]
    assert len(inventory.list_items()) == 2
    with pytest.raises(ValidationError):
        inventory.list_items("nope")


def test_consume_and_adjust(inventory, make_item):
    item = make_item("raw_material", qty=10)
    inventory.consume_stock(item.item_id, 4, "batch 1")
    inventory.adjust_stock(item.item_id, -1.5, "spillage")
    inventory.adjust_stock(item.item_id, 0.5, "recount")
    assert inventory.get_item(item.item_id).quantity == 5.0

    with pytest.raises(ValidationError):
        inventory.consume_stock(item.item_id, 6)
    with pytest.raises(ValidationError):
        inventory.consume_stock(item.item_id, -1)
    mv = inventory.consume_stock(item.item_id, 6, allow_negative=True)
    assert mv.balance_after == -1.0


def test_low_stock_items(inventory, make_item):
    make_item("raw_material", code="LOW", qty=2, min_stock=5)
    make_item("raw_material", code="EDGE", qty=5, min_stock=5)
    make_item("raw_material", code="OK", qty=9, min_stock=5)
    assert [r["code"] for r in inventory.low_stock_items()] == ["LOW", "EDGE"]


def test_inventory_value_by_category(inventory, make_item):
    make_item("raw_material", qty=10, cost=2.5)
    make_item("raw_material", qty=4, cost=1)
    make_item("finished_product", qty=3, cost=10)

    report = inventory.inventory_value_by_category()
    by_cat = {r["category"]: r for r in report["categories"]}
    assert by_cat["raw_material"]["total_value"] == 29.0
    assert by_cat["raw_material"]["item_count"] == 2
    assert by_cat["finished_product"]["total_value"] == 30.0
    assert by_cat["packaging_material"] == {
        "category": "packaging_material", "item_count": 0, "total_quantity": 0.0, "total_value": 0.0,
    }
    assert report["total_value"] == 59.0
