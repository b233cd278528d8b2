"""
Append-only party ledger.

Entries are ordered per party by (date, entry_id). Only `balance_after` is ever
updated after insert (the schema trigger enforces this), always as a
compare-and-swap against the value the caller read.
"""
from __future__ import annotations

from dataclasses import dataclass
import sqlite3
from typing import Iterable, Optional

from ..errors import ConcurrencyConflict


@dataclass
class LedgerEntry:
    entry_id: int | None
    party_id: int
    date: str
    transaction_type: str
    debit: float
    credit: float
    balance_after: float
    reference: str | None = None
    notes: str | None = None
    cancels_entry_id: int | None = None
    created_at: str | None = None

    @property
    def net(self) -> float:
        return float(self.debit) - float(self.credit)


_COLS = (
    "entry_id, party_id, date, transaction_type, debit, credit, balance_after, "
    "reference, notes, cancels_entry_id, created_at"
)


class LedgerRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def _one(self, sql: str, params: tuple) -> LedgerEntry | None:
        r = self.conn.execute(sql, params).fetchone()
        return LedgerEntry(**dict(r)) if r else None

    def _many(self, sql: str, params: Iterable) -> list[LedgerEntry]:
        return [LedgerEntry(**dict(r)) for r in self.conn.execute(sql, tuple(params)).fetchall()]

    def insert(
        self,
        *,
        party_id: int,
        date: str,
        transaction_type: str,
        debit: float,
        credit: float,
        balance_after: float,
        reference: str | None = None,
        notes: str | None = None,
        cancels_entry_id: int | None = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO ledger_entries(
                party_id, date, transaction_type, debit, credit, balance_after,
                reference, notes, cancels_entry_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (party_id, date, transaction_type, float(debit), float(credit),
             float(balance_after), reference, notes, cancels_entry_id),
        )
        return int(cur.lastrowid)

    def get(self, entry_id: int) -> LedgerEntry | None:
        return self._one(f"SELECT {_COLS} FROM ledger_entries WHERE entry_id=?", (entry_id,))

    def latest_at_or_before(self, party_id: int, date: str) -> LedgerEntry | None:
        """Last entry a new entry dated `date` would follow (same-date entries sort first)."""
        return self._one(
            f"""
            SELECT {_COLS} FROM ledger_entries
             WHERE party_id = ? AND date <= ?
             ORDER BY date DESC, entry_id DESC
             LIMIT 1
            """,
            (party_id, date),
        )

    def last_before(self, party_id: int, date: str) -> LedgerEntry | None:
        """Last entry strictly before `date` (statement opening balance)."""
        return self._one(
            f"""
            SELECT {_COLS} FROM ledger_entries
             WHERE party_id = ? AND date < ?
             ORDER BY date DESC, entry_id DESC
             LIMIT 1
            """,
            (party_id, date),
        )

    def last_entry(self, party_id: int) -> LedgerEntry | None:
        return self._one(
            f"""
            SELECT {_COLS} FROM ledger_entries
             WHERE party_id = ?
             ORDER BY date DESC, entry_id DESC
             LIMIT 1
            """,
            (party_id,),
        )

    def entries_after(self, party_id: int, date: str, entry_id: int) -> list[LedgerEntry]:
        """Entries ordered after (date, entry_id), in ledger order."""
        return self._many(
            f"""
            SELECT {_COLS} FROM ledger_entries
             WHERE party_id = ?
               AND (date > ? OR (date = ? AND entry_id > ?))
             ORDER BY date, entry_id
            """,
            (party_id, date, date, entry_id),
        )

    def list_entries(
        self,
        party_id: int,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[LedgerEntry]:
        where = ["party_id = ?"]
        params: list = [party_id]
        if date_from:
            where.append("date >= ?")
            params.append(date_from)
        if date_to:
            where.append("date <= ?")
            params.append(date_to)
        return self._many(
            f"SELECT {_COLS} FROM ledger_entries WHERE {' AND '.join(where)} ORDER BY date, entry_id",
            params,
        )

    def party_ids_with_entries(self, date_from: str, date_to: str) -> list[int]:
        rows = self.conn.execute(
            """
            SELECT DISTINCT party_id FROM ledger_entries
             WHERE date >= ? AND date <= ?
             ORDER BY party_id
            """,
            (date_from, date_to),
        ).fetchall()
        return [int(r["party_id"]) for r in rows]

    def find_cancellation(self, entry_id: int) -> LedgerEntry | None:
        return self._one(
            f"SELECT {_COLS} FROM ledger_entries WHERE cancels_entry_id=?", (entry_id,)
        )

    def update_balance_after(self, entry_id: int, new_balance: float, expected: float) -> None:
        """Compare-and-swap a stored running balance."""
        cur = self.conn.execute(
            "UPDATE ledger_entries SET balance_after = ? WHERE entry_id = ? AND balance_after = ?",
            (float(new_balance), entry_id, float(expected)),
        )
        if cur.rowcount != 1:
            raise ConcurrencyConflict(
                f"Ledger entry {entry_id} balance changed since it was read."
            )
