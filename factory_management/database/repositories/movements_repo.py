from __future__ import annotations

from dataclasses import dataclass
import sqlite3
from typing import List, Optional


@dataclass
class Movement:
    movement_id: int | None
    item_id: int
    item_type: str
    movement_type: str
    quantity: float
    balance_after: float
    reason: str | None = None
    created_at: str | None = None


_COLS = "movement_id, item_id, item_type, movement_type, quantity, balance_after, reason, created_at"


class MovementsRepo:
    """Append-only access to inventory_movements (no update/delete helpers on purpose)."""

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def insert(
        self,
        *,
        item_id: int,
        item_type: str,
        movement_type: str,
        quantity: float,
        balance_after: float,
        reason: str | None = None,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO inventory_movements(item_id, item_type, movement_type, quantity, balance_after, reason)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (item_id, item_type, movement_type, float(quantity), float(balance_after), reason),
        )
        return int(cur.lastrowid)

    def get(self, movement_id: int) -> Movement | None:
        r = self.conn.execute(
            f"SELECT {_COLS} FROM inventory_movements WHERE movement_id=?", (movement_id,)
        ).fetchone()
        return Movement(**dict(r)) if r else None

    def list_for_item(self, item_id: int, limit: Optional[int] = None) -> list[Movement]:
        """Movements of one item in insertion order (oldest first)."""
        if limit is None:
            rows = self.conn.execute(
                f"SELECT {_COLS} FROM inventory_movements WHERE item_id=? ORDER BY movement_id",
                (item_id,),
            ).fetchall()
        else:
            # newest `limit` rows, still returned oldest first
            rows = self.conn.execute(
                f"""
                SELECT * FROM (
                    SELECT {_COLS} FROM inventory_movements
                     WHERE item_id=? ORDER BY movement_id DESC LIMIT ?
                ) ORDER BY movement_id
                """,
                (item_id, max(1, int(limit))),
            ).fetchall()
        return [Movement(**dict(r)) for r in rows]

    def sum_quantity(self, item_id: int) -> float:
        r = self.conn.execute(
            "SELECT COALESCE(SUM(quantity), 0.0) AS total FROM inventory_movements WHERE item_id=?",
            (item_id,),
        ).fetchone()
        return float(r["total"])

    def find(
        self,
        *,
        date_from: Optional[str] = None,   # inclusive 'YYYY-MM-DD'
        date_to: Optional[str] = None,     # inclusive 'YYYY-MM-DD'
        item_type: Optional[str] = None,
        movement_type: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> List[dict]:
        """
        Filtered movement log joined with item code/name, newest first.
        `search` matches item code, item name or reason (case-insensitive).
        """
        where: List[str] = []
        params: List = []

        if date_from:
            where.append("DATE(m.created_at) >= DATE(?)")
            params.append(date_from)
        if date_to:
            where.append("DATE(m.created_at) <= DATE(?)")
            params.append(date_to)
        if item_type:
            where.append("m.item_type = ?")
            params.append(item_type)
        if movement_type:
            where.append("m.movement_type = ?")
            params.append(movement_type)
        if search:
            like = f"%{search.strip().lower()}%"
            where.append("(LOWER(i.code) LIKE ? OR LOWER(i.name) LIKE ? OR LOWER(COALESCE(m.reason, '')) LIKE ?)")
            params.extend([like, like, like])

        sql = """
            SELECT
                m.movement_id   AS movement_id,
                m.created_at    AS created_at,
                m.item_id       AS item_id,
                i.code          AS item_code,
                i.name          AS item_name,
                m.item_type     AS item_type,
                m.movement_type AS movement_type,
                CAST(m.quantity AS REAL)      AS quantity,
                CAST(m.balance_after AS REAL) AS balance_after,
                COALESCE(m.reason, '')        AS reason
            FROM inventory_movements m
            JOIN inventory_items i ON i.item_id = m.item_id
        """
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY m.movement_id DESC LIMIT ?"
        params.append(max(1, int(limit)))

        return [dict(r) for r in self.conn.execute(sql, tuple(params)).fetchall()]
