# tests/test_movement_ledger.py
import pytest

from factory_management.database.errors import ConcurrencyConflict, NotFound, ValidationError
from factory_management.modules.inventory import MovementLedger


def _qty(conn, item_id):
    return conn.execute("SELECT quantity FROM inventory_items WHERE item_id=?", (item_id,)).fetchone()[0]


def _movement_count(conn):
    return conn.execute("SELECT COUNT(*) FROM inventory_movements").fetchone()[0]


def test_receipt_and_consumption_chain_balances(conn, make_item):
    item = make_item("raw_material", qty=5)
    ml = MovementLedger(conn)

    m1 = ml.record_movement(item.item_id, 10, "delivery")
    m2 = ml.record_movement(item.item_id, -3, "production")

    assert (m1.movement_type, m1.quantity, m1.balance_after) == ("in", 10.0, 15.0)
    assert (m2.movement_type, m2.quantity, m2.balance_after) == ("out", -3.0, 12.0)
    assert m1.item_type == "raw_material"
    assert _qty(conn, item.item_id) == 12.0


def test_quantity_equals_opening_plus_movements(conn, make_item):
    item = make_item("packaging_material", qty=2.5)
    ml = MovementLedger(conn)
    for q in (4, -1.25, 7, -0.25):
        ml.record_movement(item.item_id, q)

    report = ml.reconcile(item.item_id)
    assert report["consistent"] is True
    assert report["movement_total"] == pytest.approx(9.5)
    assert report["quantity"] == pytest.approx(2.5 + 9.5)
    assert report["broken_movements"] == []


def test_forced_adjustment_type_and_sign_checks(conn, make_item):
    item = make_item("raw_material", qty=10)
    ml = MovementLedger(conn)

    adj = ml.record_movement(item.item_id, -4, "stocktake", movement_type="adjustment")
    assert adj.movement_type == "adjustment"
    assert adj.balance_after == 6.0

    with pytest.raises(ValidationError):
        ml.record_movement(item.item_id, -1, movement_type="in")
    with pytest.raises(ValidationError):
        ml.record_movement(item.item_id, 1, movement_type="out")


def test_unknown_item_is_not_found_and_writes_nothing(conn):
    ml = MovementLedger(conn)
    with pytest.raises(NotFound):
        ml.record_movement(9999, 5)
    assert _movement_count(conn) == 0


def test_item_type_mismatch_is_not_found(conn, make_item):
    item = make_item("raw_material", qty=1)
    ml = MovementLedger(conn)
    with pytest.raises(NotFound):
        ml.record_movement(item.item_id, 5, item_type="packaging_material")
    assert _movement_count(conn) == 0
    assert _qty(conn, item.item_id) == 1.0


def test_zero_quantity_rejected(conn, make_item):
    item = make_item("raw_material")
    with pytest.raises(ValidationError):
        MovementLedger(conn).record_movement(item.item_id, 0)
    assert _movement_count(conn) == 0


def test_negative_stock_rejected_unless_allowed(conn, make_item):
    item = make_item("raw_material", qty=2)
    ml = MovementLedger(conn)
    with pytest.raises(ValidationError):
        ml.record_movement(item.item_id, -3)
    assert _qty(conn, item.item_id) == 2.0

    m = ml.record_movement(item.item_id, -3, allow_negative=True)
    assert m.balance_after == -1.0


def test_list_and_find_movements(conn, make_item):
    flour = make_item("raw_material", qty=0, code="FLOUR", name="Wheat flour")
    box = make_item("packaging_material", qty=0, code="BOX", name="Carton")
    ml = MovementLedger(conn)
    ml.record_movement(flour.item_id, 10, "supplier delivery")
    ml.record_movement(flour.item_id, -2, "batch 7")
    ml.record_movement(box.item_id, 50, "supplier delivery")

    assert [m.quantity for m in ml.list_movements(flour.item_id)] == [10.0, -2.0]
    assert [m.quantity for m in ml.list_movements(flour.item_id, limit=1)] == [-2.0]

    rows = ml.find_movements(item_type="raw_material")
    assert {r["item_code"] for r in rows} == {"FLOUR"}
    assert rows[0]["movement_id"] > rows[1]["movement_id"]  # newest first

    rows = ml.find_movements(search="carton")
    assert [r["item_code"] for r in rows] == ["BOX"]

    rows = ml.find_movements(movement_type="out")
    assert [r["reason"] for r in rows] == ["batch 7"]

    rows = ml.find_movements(search="DELIVERY")
    assert len(rows) == 2


def test_reconcile_flags_stored_quantity_drift(conn, make_item):
    item = make_item("raw_material", qty=0)
    ml = MovementLedger(conn)
    ml.record_movement(item.item_id, 5)
    # bypass the engine to simulate drift
    conn.execute("UPDATE inventory_items SET quantity = 99 WHERE item_id=?", (item.item_id,))

    report = ml.reconcile(item.item_id)
    assert report["consistent"] is False
    assert report["expected_quantity"] == 5.0
    assert report["quantity"] == 99.0


def test_stale_quantity_is_retried_from_a_fresh_read(conn, make_item, monkeypatch):
    item = make_item("raw_material", qty=5)
    ml = MovementLedger(conn)
    calls = {"n": 0}
    real = ml.items.update_quantity

    def flaky(item_id, new_qty, expected):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrencyConflict("simulated stale read")
        return real(item_id, new_qty, expected=expected)

    monkeypatch.setattr(ml.items, "update_quantity", flaky)
    m = ml.record_movement(item.item_id, 4, "delivery")

    assert calls["n"] == 2
    assert m.balance_after == 9.0
    assert _qty(conn, item.item_id) == 9.0
    assert _movement_count(conn) == 1
