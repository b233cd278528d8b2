# factory_management/database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import DB_PATH
from ..constants import BUSY_TIMEOUT_SEC, SCHEMA_VERSION
from . import schema as schema_module
from .versioning import get_current_version, set_current_version
from .transactions import immediate_tx


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
      - explicit transaction control (isolation_level=None); writes go through
        database.transactions.immediate_tx
    Ensures the schema is applied idempotently.

    sqlite3 connections are bound to the thread that opened them: every worker
    thread opens its own.
    """
    path = Path(db_path) if db_path is not None else DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    # Always apply the schema (idempotent: uses CREATE IF NOT EXISTS / DROP TRIGGER IF EXISTS)
    schema_module.init_schema(path)

    conn = sqlite3.connect(path, timeout=BUSY_TIMEOUT_SEC, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute(f"PRAGMA busy_timeout = {int(BUSY_TIMEOUT_SEC * 1000)};")

    if get_current_version(conn) is None:
        set_current_version(conn, SCHEMA_VERSION)
    return conn


__all__ = [
    "get_connection",
    "immediate_tx",
]
