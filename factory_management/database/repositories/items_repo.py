"""
Repository for inventory items (one table, discriminated by `category`).

Quantity and unit cost are only changed through the compare-and-swap helpers
below; the engines in modules/inventory own the read-modify-write.
"""
from __future__ import annotations

from dataclasses import dataclass
import sqlite3
from typing import Iterable, Optional

from ..errors import ConcurrencyConflict


@dataclass
class InventoryItem:
    item_id: int | None
    code: str
    name: str
    category: str
    unit: str | None
    opening_quantity: float
    quantity: float
    unit_cost: float
    min_stock: float
    importance: int
    created_at: str | None = None
    updated_at: str | None = None


_COLS = (
    "item_id, code, name, category, unit, opening_quantity, quantity, unit_cost, "
    "min_stock, importance, created_at, updated_at"
)


class ItemsRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def create(
        self,
        code: str,
        name: str,
        category: str,
        *,
        unit: str | None = None,
        opening_quantity: float = 0.0,
        unit_cost: float = 0.0,
        min_stock: float = 0.0,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO inventory_items(
                code, name, category, unit, opening_quantity, quantity, unit_cost, min_stock
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (code, name, category, unit, float(opening_quantity), float(opening_quantity),
             float(unit_cost), float(min_stock)),
        )
        return int(cur.lastrowid)

    def get(self, item_id: int) -> InventoryItem | None:
        r = self.conn.execute(
            f"SELECT {_COLS} FROM inventory_items WHERE item_id=?", (item_id,)
        ).fetchone()
        return InventoryItem(**dict(r)) if r else None

    def get_by_code(self, code: str) -> InventoryItem | None:
        r = self.conn.execute(
            f"SELECT {_COLS} FROM inventory_items WHERE code=?", (code,)
        ).fetchone()
        return InventoryItem(**dict(r)) if r else None

    def list_items(self, category: Optional[str] = None) -> list[InventoryItem]:
        if category:
            rows = self.conn.execute(
                f"SELECT {_COLS} FROM inventory_items WHERE category=? ORDER BY code",
                (category,),
            ).fetchall()
        else:
            rows = self.conn.execute(
                f"SELECT {_COLS} FROM inventory_items ORDER BY category, code"
            ).fetchall()
        return [InventoryItem(**dict(r)) for r in rows]

    # ---- compare-and-swap writes ----

    def update_quantity(self, item_id: int, new_qty: float, expected: float) -> None:
        cur = self.conn.execute(
            """
            UPDATE inventory_items
               SET quantity = ?, updated_at = CURRENT_TIMESTAMP
             WHERE item_id = ? AND quantity = ?
            """,
            (float(new_qty), item_id, float(expected)),
        )
        if cur.rowcount != 1:
            raise ConcurrencyConflict(f"Quantity of item {item_id} changed since it was read.")

    def update_unit_cost(self, item_id: int, new_cost: float, expected: float) -> None:
        cur = self.conn.execute(
            """
            UPDATE inventory_items
               SET unit_cost = ?, updated_at = CURRENT_TIMESTAMP
             WHERE item_id = ? AND unit_cost = ?
            """,
            (float(new_cost), item_id, float(expected)),
        )
        if cur.rowcount != 1:
            raise ConcurrencyConflict(f"Unit cost of item {item_id} changed since it was read.")

    def set_importance_many(self, scores: Iterable[tuple[int, int]]) -> None:
        self.conn.executemany(
            "UPDATE inventory_items SET importance = ? WHERE item_id = ?",
            [(int(score), int(item_id)) for item_id, score in scores],
        )

    # ---- cost journal ----

    def add_cost_history(self, item_id: int, old_cost: float, new_cost: float, reason: str) -> int:
        cur = self.conn.execute(
            "INSERT INTO item_cost_history(item_id, old_cost, new_cost, reason) VALUES (?, ?, ?, ?)",
            (item_id, float(old_cost), float(new_cost), reason),
        )
        return int(cur.lastrowid)

    def cost_history(self, item_id: int) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT history_id, item_id, old_cost, new_cost, reason, created_at
              FROM item_cost_history
             WHERE item_id = ?
             ORDER BY history_id
            """,
            (item_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    # ---- reporting views ----

    def low_stock(self) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT item_id, code, name, category, unit, quantity, min_stock, importance
              FROM v_low_stock
             ORDER BY importance DESC, (min_stock - quantity) DESC, code
            """
        ).fetchall()
        return [dict(r) for r in rows]

    def value_by_category(self) -> list[dict]:
        rows = self.conn.execute(
            "SELECT category, item_count, total_quantity, total_value FROM v_inventory_value ORDER BY category"
        ).fetchall()
        return [dict(r) for r in rows]
