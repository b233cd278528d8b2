# factory_management/database/transactions.py
from __future__ import annotations

import itertools
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from .errors import PersistenceFailure

_savepoint_ids = itertools.count(1)


@contextmanager
def immediate_tx(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the block as one atomic unit.

    Outermost call: BEGIN IMMEDIATE (takes the write lock up front so concurrent
    writers queue instead of interleaving their read-modify-write), COMMIT on
    success, ROLLBACK on any error.

    Nested call (a transaction is already open on `conn`): a SAVEPOINT, so an
    inner failure undoes only the inner work and the outer unit decides.

    sqlite3 errors leave the outermost unit as PersistenceFailure.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise PersistenceFailure(f"Could not start a write transaction: {e}") from e

    try:
        yield conn
    except sqlite3.Error as e:
        conn.rollback()
        raise PersistenceFailure(f"Write rejected by the database: {e}") from e
    except BaseException:
        conn.rollback()
        raise

    try:
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        raise PersistenceFailure(f"Commit failed: {e}") from e
