# tests/test_statements.py
import pytest

from factory_management.database.errors import NotFound, ValidationError
from factory_management.modules.ledger import AccountStatements


@pytest.fixture
def statements(conn):
    return AccountStatements(conn)


@pytest.fixture
def busy_party(ledger, make_party):
    p = make_party("Nile Traders", opening=100, balance_type="debit")
    ledger.append_entry(p.party_id, "2024-01-15", 400, 0, "sale_invoice", "INV-1")
    ledger.append_entry(p.party_id, "2024-02-03", 0, 250, "payment_received", "RC-1")
    ledger.append_entry(p.party_id, "2024-02-20", 120.5, 0, "sale_invoice", "INV-2")
    ledger.append_entry(p.party_id, "2024-03-02", 0, 60, "sales_return", "RT-1")
    return p


def test_statement_for_a_period(statements, busy_party):
    st = statements.generate_account_statement(busy_party.party_id, "2024-02-01", "2024-02-29")

    assert st["period"] == {"from": "2024-02-01", "to": "2024-02-29"}
    assert st["opening_balance"] == 500.0          # 100 opening + 400 invoice
    assert [r["reference"] for r in st["rows"]] == ["RC-1", "INV-2"]
    assert st["totals"] == {"debit": 120.5, "credit": 250.0, "net": -129.5}
    assert st["closing_balance"] == 370.5
    assert st["rows"][-1]["balance_after"] == st["closing_balance"]


def test_statement_rows_sum_to_closing_minus_opening(statements, busy_party):
    st = statements.generate_account_statement(busy_party.party_id, "2024-01-01", "2024-12-31")
    net = sum(r["debit"] - r["credit"] for r in st["rows"])
    assert round(st["closing_balance"] - st["opening_balance"], 2) == round(net, 2)
    assert st["opening_balance"] == 100.0
    assert st["closing_balance"] == 310.5


def test_statement_before_any_entry_uses_signed_opening(statements, ledger, make_party):
    p = make_party("Supplier", "supplier", opening=80, balance_type="credit")
    ledger.append_entry(p.party_id, "2024-05-01", 0, 20, "purchase_invoice")

    st = statements.generate_account_statement(p.party_id, "2024-01-01", "2024-01-31")
    assert st["rows"] == []
    assert st["opening_balance"] == st["closing_balance"] == -80.0


def test_statement_reflects_back_dated_entries(statements, ledger, busy_party):
    ledger.append_entry(busy_party.party_id, "2024-01-20", 30, 0, "sale_invoice", "INV-LATE")
    st = statements.generate_account_statement(busy_party.party_id, "2024-02-01", "2024-02-29")
    assert st["opening_balance"] == 530.0
    assert st["closing_balance"] == 400.5


def test_statement_validation(statements, busy_party):
    with pytest.raises(ValidationError):
        statements.generate_account_statement(busy_party.party_id, "2024-03-01", "2024-02-01")
    with pytest.raises(ValidationError):
        statements.generate_account_statement(busy_party.party_id, "01/02/2024", "2024-02-01")
    with pytest.raises(NotFound):
        statements.generate_account_statement(777, "2024-01-01", "2024-02-01")


def test_multi_party_statements_filter_by_type(statements, busy_party, make_party):
    make_party("Quiet Supplier", "supplier")

    everyone = statements.generate_statements("2024-01-01", "2024-12-31")
    assert {s["party_name"] for s in everyone["statements"]} == {"Nile Traders", "Quiet Supplier"}
    assert everyone["generated_at"]

    suppliers = statements.generate_statements("2024-01-01", "2024-12-31", party_type="supplier")
    assert [s["party_name"] for s in suppliers["statements"]] == ["Quiet Supplier"]
    assert suppliers["statements"][0]["rows"] == []


def test_general_ledger_groups_active_parties(statements, ledger, busy_party, make_party):
    other = make_party("Delta Foods")
    ledger.append_entry(other.party_id, "2024-02-10", 75, 0, "sale_invoice")
    make_party("No Activity")

    gl = statements.general_ledger("2024-02-01", "2024-02-29")

    assert [g["party_name"] for g in gl["parties"]] == ["Nile Traders", "Delta Foods"]
    assert gl["summary"] == {
        "party_count": 2,
        "entry_count": 3,
        "total_debit": 195.5,
        "total_credit": 250.0,
        "net": -54.5,
    }
