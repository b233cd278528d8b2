# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - pytest-qt owns the Qt application (use qapp/qtbot fixtures)
# - Every test gets its own SQLite file under tmp_path (schema applied by
#   get_connection), so tests never share state
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON (set by get_connection)
# - Small factories for items/parties keep the tests readable
# ---------------------------------------------------------------------

from __future__ import annotations

import itertools
import os
from pathlib import Path

import pytest

# the importance job needs an event loop, never a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtCore import QCoreApplication

from factory_management.database import get_connection
from factory_management.modules.inventory import InventoryService
from factory_management.modules.ledger import LedgerEngine

_codes = itertools.count(1)


# ---------- Qt: pytest-qt owns the app; a core app is enough ----------
@pytest.fixture(scope="session")
def qapp_cls():
    return QCoreApplication


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "factory.db"


@pytest.fixture
def conn(db_path):
    c = get_connection(db_path)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def inventory(conn) -> InventoryService:
    return InventoryService(conn)


@pytest.fixture
def ledger(conn) -> LedgerEngine:
    return LedgerEngine(conn)


@pytest.fixture
def make_item(inventory):
    """make_item(category, qty=0, cost=0, code=None, min_stock=0) -> InventoryItem"""
    def _make(category, qty=0.0, cost=0.0, code=None, min_stock=0.0, name=None):
        code = code or f"IT-{next(_codes):05d}"
        return inventory.create_item(
            code,
            name or code,
            category,
            opening_quantity=qty,
            unit_cost=cost,
            min_stock=min_stock,
        )
    return _make


@pytest.fixture
def make_party(ledger):
    def _make(name="Party", party_type="customer", opening=0.0, balance_type="debit"):
        return ledger.create_party(name, party_type, opening, balance_type)
    return _make
