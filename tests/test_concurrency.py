# tests/test_concurrency.py
#
# Every worker opens its own connection to the same database file; writers are
# serialized by BEGIN IMMEDIATE and checked by compare-and-swap updates.
import threading

import pytest

from factory_management.database import get_connection
from factory_management.modules.inventory import InventoryService, MovementLedger
from factory_management.modules.ledger import LedgerEngine


def _run_threads(db_path, jobs):
    """jobs: callables taking a fresh connection. Returns the errors raised."""
    barrier = threading.Barrier(len(jobs))
    errors = []

    def worker(job):
        conn = get_connection(db_path)
        try:
            barrier.wait()
            job(conn)
        except Exception as e:  # collected and asserted on by the test
            errors.append(e)
        finally:
            conn.close()

    threads = [threading.Thread(target=worker, args=(j,)) for j in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return errors


def test_scenario_d_concurrent_receipts_do_not_lose_updates(conn, db_path, make_item):
    item = make_item("raw_material", qty=0, cost=0)

    errors = _run_threads(db_path, [
        lambda c: InventoryService(c).receive_stock(item.item_id, 10, unit_cost=20),
        lambda c: InventoryService(c).receive_stock(item.item_id, 5, unit_cost=30),
    ])

    assert errors == []
    row = conn.execute(
        "SELECT quantity, unit_cost FROM inventory_items WHERE item_id=?", (item.item_id,)
    ).fetchone()
    assert row["quantity"] == 15.0
    # both orders blend to 350 / 15
    assert row["unit_cost"] == 23.33
    assert MovementLedger(conn).reconcile(item.item_id)["consistent"] is True


def test_many_writers_on_one_item(conn, db_path, make_item):
    item = make_item("packaging_material", qty=100)

    def consume(c):
        svc = InventoryService(c)
        for _ in range(5):
            svc.consume_stock(item.item_id, 1)

    def receive(c):
        svc = InventoryService(c)
        for _ in range(5):
            svc.receive_stock(item.item_id, 2)

    errors = _run_threads(db_path, [consume, receive, consume, receive])

    assert errors == []
    report = MovementLedger(conn).reconcile(item.item_id)
    assert report["consistent"] is True
    assert report["quantity"] == 100 - 10 + 20


def test_concurrent_back_dated_postings_keep_the_chain(conn, db_path, make_party):
    p = make_party("Busy customer")
    days = ["2024-01-05", "2024-01-01", "2024-01-03", "2024-01-02"]

    def post(day):
        def _job(c):
            engine = LedgerEngine(c)
            engine.append_entry(p.party_id, day, 100, 0, "sale_invoice")
            engine.append_entry(p.party_id, day, 0, 25, "payment_received")
        return _job

    errors = _run_threads(db_path, [post(d) for d in days])

    assert errors == []
    engine = LedgerEngine(conn)
    assert engine.verify_party(p.party_id) == []
    assert engine.current_balance(p.party_id) == pytest.approx(4 * 75.0)
