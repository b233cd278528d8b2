# tests/test_ledger_engine.py
import pytest

from factory_management.database.errors import ConcurrencyConflict, NotFound, ValidationError
from factory_management.database.repositories.ledger_repo import LedgerRepo
from factory_management.modules.ledger import LedgerEngine


def _balances(ledger, party_id):
    return [e.balance_after for e in ledger.list_entries(party_id)]


def test_scenario_b_back_dated_entry_cascades(ledger, make_party):
    p = make_party("Acme")
    ledger.append_entry(p.party_id, "2024-01-10", 500, 0, "sale_invoice", "INV-1")
    ledger.append_entry(p.party_id, "2024-01-20", 0, 200, "payment_received", "RC-1")
    assert _balances(ledger, p.party_id) == [500.0, 300.0]

    back = ledger.append_entry(p.party_id, "2024-01-05", 100, 0, "sale_invoice", "INV-0")

    assert back.balance_after == 100.0
    assert _balances(ledger, p.party_id) == [100.0, 600.0, 400.0]
    assert ledger.current_balance(p.party_id) == 400.0
    assert ledger.verify_party(p.party_id) == []


def test_same_date_entries_follow_insertion_order(ledger, make_party):
    p = make_party()
    ledger.append_entry(p.party_id, "2024-03-01", 100, 0, "sale_invoice")
    ledger.append_entry(p.party_id, "2024-03-05", 50, 0, "sale_invoice")
    e = ledger.append_entry(p.party_id, "2024-03-01", 0, 30, "payment_received")

    entries = ledger.list_entries(p.party_id)
    assert [x.entry_id for x in entries][1] == e.entry_id
    assert [x.balance_after for x in entries] == [100.0, 70.0, 120.0]


def test_signed_opening_balance_is_the_starting_point(ledger, make_party):
    supplier = make_party("Mill", "supplier", opening=250, balance_type="credit")
    assert ledger.current_balance(supplier.party_id) == -250.0

    e = ledger.append_entry(supplier.party_id, "2024-02-01", 0, 100, "purchase_invoice")
    assert e.balance_after == -350.0


def test_running_balance_invariant_holds_after_many_inserts(ledger, make_party):
    p = make_party(opening=10)
    postings = [
        ("2024-05-03", 40, 0), ("2024-05-01", 0, 15), ("2024-05-09", 12.5, 0),
        ("2024-05-01", 7.25, 0), ("2024-04-30", 0, 3), ("2024-05-09", 0, 1.75),
    ]
    for day, dr, cr in postings:
        ledger.append_entry(p.party_id, day, dr, cr, "adjustment")

    running = 10.0
    for e in ledger.list_entries(p.party_id):
        running = round(running + e.debit - e.credit, 2)
        assert e.balance_after == running
    assert ledger.current_balance(p.party_id) == running == 50.0


def test_cancel_posts_compensating_entry(ledger, make_party):
    p = make_party()
    inv = ledger.append_entry(p.party_id, "2024-06-01", 500, 0, "sale_invoice", "INV-9")

    c = ledger.cancel_entry(inv.entry_id, date="2024-06-02")

    assert c.transaction_type == "cancel_sale_invoice"
    assert (c.debit, c.credit) == (0.0, 500.0)
    assert c.reference == "INV-9"
    assert c.cancels_entry_id == inv.entry_id
    assert c.balance_after == 0.0
    assert len(ledger.list_entries(p.party_id)) == 2


def test_back_dated_cancel_cascades(ledger, make_party):
    p = make_party()
    inv = ledger.append_entry(p.party_id, "2024-06-01", 500, 0, "sale_invoice")
    ledger.append_entry(p.party_id, "2024-06-10", 50, 0, "sale_invoice")

    ledger.cancel_entry(inv.entry_id, date="2024-06-01")
    assert _balances(ledger, p.party_id) == [500.0, 0.0, 50.0]


def test_cancel_defaults_to_today(ledger, make_party):
    from factory_management.utils.helpers import today_str

    p = make_party()
    inv = ledger.append_entry(p.party_id, "2024-01-01", 10, 0, "sale_invoice")
    assert ledger.cancel_entry(inv.entry_id).date == today_str()


@pytest.mark.parametrize("tx_type", ["opening_balance", "adjustment"])
def test_types_without_cancellation_are_rejected(ledger, make_party, tx_type):
    p = make_party()
    e = ledger.append_entry(p.party_id, "2024-01-01", 10, 0, tx_type)
    with pytest.raises(ValidationError):
        ledger.cancel_entry(e.entry_id)


def test_cannot_cancel_twice_or_cancel_a_cancellation(ledger, make_party):
    p = make_party()
    e = ledger.append_entry(p.party_id, "2024-01-01", 10, 0, "sale_invoice")
    c = ledger.cancel_entry(e.entry_id, "2024-01-02")
    with pytest.raises(ValidationError):
        ledger.cancel_entry(e.entry_id, "2024-01-03")
    with pytest.raises(ValidationError):
        ledger.cancel_entry(c.entry_id, "2024-01-03")
    with pytest.raises(NotFound):
        ledger.cancel_entry(99999)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(date="2024-13-01", debit=1, credit=0, transaction_type="sale_invoice"),
        dict(date="yesterday", debit=1, credit=0, transaction_type="sale_invoice"),
        dict(date="2024-01-01", debit=-1, credit=0, transaction_type="sale_invoice"),
        dict(date="2024-01-01", debit=0, credit=0, transaction_type="sale_invoice"),
        dict(date="2024-01-01", debit="abc", credit=0, transaction_type="sale_invoice"),
        dict(date="2024-01-01", debit=1, credit=0, transaction_type="gift"),
        dict(date="2024-01-01", debit=1, credit=0, transaction_type="cancel_sale_invoice"),
    ],
)
def test_append_validation(ledger, make_party, kwargs):
    p = make_party()
    with pytest.raises(ValidationError):
        ledger.append_entry(p.party_id, **kwargs)
    assert ledger.list_entries(p.party_id) == []


def test_unknown_party(ledger):
    with pytest.raises(NotFound):
        ledger.append_entry(404, "2024-01-01", 1, 0, "sale_invoice")


def test_update_opening_balance_rechains_everything(ledger, make_party):
    p = make_party()
    ledger.append_entry(p.party_id, "2024-01-01", 100, 0, "sale_invoice")
    ledger.append_entry(p.party_id, "2024-01-02", 0, 40, "payment_received")

    new_balance = ledger.update_opening_balance(p.party_id, 25, "credit")

    assert new_balance == 35.0
    assert _balances(ledger, p.party_id) == [75.0, 35.0]
    assert ledger.get_party(p.party_id).signed_opening == -25.0
    assert ledger.verify_party(p.party_id) == []


def test_rebuild_repairs_drifted_balances(conn, ledger, make_party):
    p = make_party()
    e1 = ledger.append_entry(p.party_id, "2024-01-01", 100, 0, "sale_invoice")
    ledger.append_entry(p.party_id, "2024-01-02", 10, 0, "sale_invoice")
    conn.execute("UPDATE ledger_entries SET balance_after = 1 WHERE entry_id = ?", (e1.entry_id,))

    problems = ledger.verify_party(p.party_id)
    assert [x["entry_id"] for x in problems] == [e1.entry_id]

    assert ledger.rebuild_balances(p.party_id) == 1
    assert ledger.verify_party(p.party_id) == []


def test_balance_write_is_compare_and_swap(conn, ledger, make_party):
    p = make_party()
    e = ledger.append_entry(p.party_id, "2024-01-01", 100, 0, "sale_invoice")
    repo = LedgerRepo(conn)
    with pytest.raises(ConcurrencyConflict):
        repo.update_balance_after(e.entry_id, 200.0, expected=999.0)
    assert repo.get(e.entry_id).balance_after == 100.0


def test_conflict_is_retried_with_fresh_state(conn, make_party, monkeypatch):
    engine = LedgerEngine(conn)
    p = make_party()
    calls = {"n": 0}
    real = engine.parties.set_balance

    def flaky(party_id, new_balance, expected):
        calls["n"] += 1
        if calls["n"] == 1:
            raise ConcurrencyConflict("simulated stale read")
        return real(party_id, new_balance, expected)

    monkeypatch.setattr(engine.parties, "set_balance", flaky)
    e = engine.append_entry(p.party_id, "2024-01-01", 70, 0, "sale_invoice")

    assert calls["n"] == 2
    assert e.balance_after == 70.0
    # the first attempt was rolled back: exactly one entry exists
    assert len(engine.list_entries(p.party_id)) == 1
