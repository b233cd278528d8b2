"""
Bill-of-materials lines.

Two kinds of edge leave a composite (parent) item:
- bom_ingredients: percentage composition (raw / semi / water)
- bom_packaging:   per-unit packaging quantity
"""
from __future__ import annotations

from dataclasses import dataclass
import sqlite3
from typing import Optional


@dataclass
class BomIngredient:
    bom_line_id: int | None
    parent_item_id: int
    ingredient_type: str
    ingredient_id: int | None
    percentage: float
    created_at: str | None = None


@dataclass
class PackagingLine:
    packaging_line_id: int | None
    parent_item_id: int
    packaging_item_id: int
    quantity: float


_ING_COLS = "bom_line_id, parent_item_id, ingredient_type, ingredient_id, percentage, created_at"
_PKG_COLS = "packaging_line_id, parent_item_id, packaging_item_id, quantity"


class BomRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- ingredients ----

    def ingredients_for(self, parent_id: int) -> list[BomIngredient]:
        rows = self.conn.execute(
            f"SELECT {_ING_COLS} FROM bom_ingredients WHERE parent_item_id=? ORDER BY bom_line_id",
            (parent_id,),
        ).fetchall()
        return [BomIngredient(**dict(r)) for r in rows]

    def get_line(self, bom_line_id: int) -> BomIngredient | None:
        r = self.conn.execute(
            f"SELECT {_ING_COLS} FROM bom_ingredients WHERE bom_line_id=?", (bom_line_id,)
        ).fetchone()
        return BomIngredient(**dict(r)) if r else None

    def insert_ingredient(
        self,
        parent_id: int,
        ingredient_type: str,
        ingredient_id: Optional[int],
        percentage: float,
    ) -> int:
        cur = self.conn.execute(
            """
            INSERT INTO bom_ingredients(parent_item_id, ingredient_type, ingredient_id, percentage)
            VALUES (?, ?, ?, ?)
            """,
            (parent_id, ingredient_type, ingredient_id, float(percentage)),
        )
        return int(cur.lastrowid)

    def update_percentage(self, bom_line_id: int, percentage: float) -> None:
        self.conn.execute(
            "UPDATE bom_ingredients SET percentage=? WHERE bom_line_id=?",
            (float(percentage), bom_line_id),
        )

    def delete_ingredient(self, bom_line_id: int) -> None:
        self.conn.execute("DELETE FROM bom_ingredients WHERE bom_line_id=?", (bom_line_id,))

    # ---- packaging ----

    def packaging_for(self, parent_id: int) -> list[PackagingLine]:
        rows = self.conn.execute(
            f"SELECT {_PKG_COLS} FROM bom_packaging WHERE parent_item_id=? ORDER BY packaging_line_id",
            (parent_id,),
        ).fetchall()
        return [PackagingLine(**dict(r)) for r in rows]

    def insert_packaging(self, parent_id: int, packaging_item_id: int, quantity: float) -> int:
        cur = self.conn.execute(
            "INSERT INTO bom_packaging(parent_item_id, packaging_item_id, quantity) VALUES (?, ?, ?)",
            (parent_id, packaging_item_id, float(quantity)),
        )
        return int(cur.lastrowid)

    def clear(self, parent_id: int) -> None:
        """Remove every ingredient and packaging line of a parent."""
        self.conn.execute("DELETE FROM bom_ingredients WHERE parent_item_id=?", (parent_id,))
        self.conn.execute("DELETE FROM bom_packaging WHERE parent_item_id=?", (parent_id,))

    # ---- graph queries ----

    def edges(self) -> list[tuple[int, int]]:
        """All (parent, component) pairs, ingredients and packaging alike; water has no edge."""
        rows = self.conn.execute(
            """
            SELECT parent_item_id AS parent, ingredient_id AS child
              FROM bom_ingredients WHERE ingredient_id IS NOT NULL
            UNION
            SELECT parent_item_id AS parent, packaging_item_id AS child
              FROM bom_packaging
            """
        ).fetchall()
        return [(int(r["parent"]), int(r["child"])) for r in rows]

    def parents(self) -> list[int]:
        """Every item that has at least one BOM line."""
        rows = self.conn.execute(
            """
            SELECT parent_item_id FROM bom_ingredients
            UNION
            SELECT parent_item_id FROM bom_packaging
            ORDER BY 1
            """
        ).fetchall()
        return [int(r[0]) for r in rows]

    # ---- usage statistics (importance) ----

    def ingredient_usage(self, ingredient_type: str) -> list[dict]:
        """Per ingredient: distinct parents and average percentage."""
        rows = self.conn.execute(
            """
            SELECT ingredient_id                   AS item_id,
                   COUNT(DISTINCT parent_item_id)  AS parents,
                   AVG(percentage)                 AS average_usage
              FROM bom_ingredients
             WHERE ingredient_type = ? AND ingredient_id IS NOT NULL
             GROUP BY ingredient_id
            """,
            (ingredient_type,),
        ).fetchall()
        return [dict(r) for r in rows]

    def packaging_usage(self) -> list[dict]:
        """Per packaging item: distinct parents and average per-unit quantity."""
        rows = self.conn.execute(
            """
            SELECT packaging_item_id               AS item_id,
                   COUNT(DISTINCT parent_item_id)  AS parents,
                   AVG(quantity)                   AS average_usage
              FROM bom_packaging
             GROUP BY packaging_item_id
            """
        ).fetchall()
        return [dict(r) for r in rows]
