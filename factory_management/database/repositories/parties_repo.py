from __future__ import annotations

from dataclasses import dataclass
import sqlite3

from ..errors import ConcurrencyConflict


@dataclass
class Party:
    party_id: int | None
    name: str
    party_type: str
    opening_balance: float
    balance_type: str
    created_at: str | None = None

    @property
    def signed_opening(self) -> float:
        """Opening balance as a ledger value: debit positive, credit negative."""
        amt = float(self.opening_balance or 0.0)
        return amt if self.balance_type == "debit" else -amt


_COLS = "party_id, name, party_type, opening_balance, balance_type, created_at"


class PartiesRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def create(
        self,
        name: str,
        party_type: str,
        opening_balance: float = 0.0,
        balance_type: str = "debit",
    ) -> int:
        """
        Insert the party and its cached balance row (starts at the signed opening).
        Caller owns the transaction.
        """
        cur = self.conn.execute(
            "INSERT INTO parties(name, party_type, opening_balance, balance_type) VALUES (?, ?, ?, ?)",
            (name, party_type, float(opening_balance), balance_type),
        )
        party_id = int(cur.lastrowid)
        signed = float(opening_balance) if balance_type == "debit" else -float(opening_balance)
        self.conn.execute(
            "INSERT INTO party_balances(party_id, balance) VALUES (?, ?)",
            (party_id, signed),
        )
        return party_id

    def get(self, party_id: int) -> Party | None:
        r = self.conn.execute(
            f"SELECT {_COLS} FROM parties WHERE party_id=?", (party_id,)
        ).fetchone()
        return Party(**dict(r)) if r else None

    def list_parties(self, party_type: str | None = None) -> list[Party]:
        sql = f"SELECT {_COLS} FROM parties"
        where, params = [], []
        if party_type:
            where.append("party_type = ?")
            params.append(party_type)
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY name COLLATE NOCASE, party_id"
        return [Party(**dict(r)) for r in self.conn.execute(sql, params).fetchall()]

    def update_opening(self, party_id: int, amount: float, balance_type: str) -> None:
        self.conn.execute(
            "UPDATE parties SET opening_balance=?, balance_type=? WHERE party_id=?",
            (float(amount), balance_type, party_id),
        )

    # ---- cached running balance ----

    def get_balance(self, party_id: int) -> float | None:
        r = self.conn.execute(
            "SELECT balance FROM party_balances WHERE party_id=?", (party_id,)
        ).fetchone()
        return float(r["balance"]) if r else None

    def set_balance(self, party_id: int, new_balance: float, expected: float) -> None:
        """Compare-and-swap the cached balance; raises ConcurrencyConflict if it moved."""
        cur = self.conn.execute(
            """
            UPDATE party_balances
               SET balance = ?, last_updated = CURRENT_TIMESTAMP
             WHERE party_id = ? AND balance = ?
            """,
            (float(new_balance), party_id, float(expected)),
        )
        if cur.rowcount != 1:
            raise ConcurrencyConflict(
                f"Cached balance of party {party_id} changed since it was read."
            )

    def reset_balance(self, party_id: int, balance: float) -> None:
        """Unconditional write, used when the whole chain is rebuilt from the log."""
        self.conn.execute(
            """
            INSERT INTO party_balances(party_id, balance) VALUES (?, ?)
            ON CONFLICT(party_id) DO UPDATE
               SET balance = excluded.balance, last_updated = CURRENT_TIMESTAMP
            """,
            (party_id, float(balance)),
        )
