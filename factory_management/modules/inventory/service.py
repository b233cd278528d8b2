"""
modules/inventory/service.py

Stock chain: valuation (with BOM roll-up) -> movement, one atomic unit per event.

Public interface
----------------
- create_item / get_item / list_items
- receive_stock(item_id, quantity, unit_cost=None, reason=None, item_type=None)
- consume_stock(item_id, quantity, reason=None, item_type=None)
- adjust_stock(item_id, delta, reason=None, item_type=None)
- receive_many(receipts, mode)
- low_stock_items() / inventory_value_by_category()

A ConcurrencyConflict inside the receipt chain re-runs the whole chain from a
fresh read; single-step events retry inside MovementLedger.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, Mapping, Optional

from ...constants import ITEM_CATEGORIES
from ...database.errors import NotFound, ValidationError
from ...database.repositories.items_repo import InventoryItem, ItemsRepo
from ...database.repositories.movements_repo import Movement, MovementsRepo
from ...database.transactions import immediate_tx
from ...utils.helpers import round_money
from ...utils.loggers import get_logger
from ...utils.retry import retry_on_conflict
from ...utils.validators import (
    require_choice,
    require_non_empty,
    require_non_negative,
    require_number,
    require_positive,
)
from ..batch.runner import BatchMode, BatchReport, run_batch
from ..bom.rollup import BomCostRollup
from .movement_ledger import MovementLedger
from .valuation import ValuationEngine


class InventoryService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        ledger: MovementLedger | None = None,
        valuation: ValuationEngine | None = None,
        rollup: BomCostRollup | None = None,
        logger: logging.Logger | None = None,
    ):
        self.conn = conn
        self.items = ItemsRepo(conn)
        self.movements = MovementsRepo(conn)
        self.ledger = ledger or MovementLedger(conn, self.items, self.movements)
        self.rollup = rollup or BomCostRollup(conn, self.items)
        self.valuation = valuation or ValuationEngine(conn, self.items, self.rollup)
        self._log = logger or get_logger("factory.inventory")

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------
    def create_item(
        self,
        code: str,
        name: str,
        category: str,
        *,
        unit: str | None = None,
        opening_quantity: float = 0.0,
        unit_cost: float = 0.0,
        min_stock: float = 0.0,
    ) -> InventoryItem:
        code = require_non_empty(code, "Code")
        name = require_non_empty(name, "Name")
        require_choice(category, ITEM_CATEGORIES, "Category")
        opening = require_number(opening_quantity, "Opening quantity")
        cost = require_non_negative(unit_cost, "Unit cost")
        min_qty = require_non_negative(min_stock, "Minimum stock")

        with immediate_tx(self.conn):
            if self.items.get_by_code(code) is not None:
                raise ValidationError(f"An item with code {code!r} already exists.")
            item_id = self.items.create(
                code, name, category,
                unit=unit, opening_quantity=opening, unit_cost=cost, min_stock=min_qty,
            )
        self._log.info("created %s %s (%s)", category, code, name)
        return self.items.get(item_id)

    def get_item(self, item_id: int) -> InventoryItem:
        item = self.items.get(item_id)
        if item is None:
            raise NotFound(f"Inventory item {item_id} does not exist.")
        return item

    def list_items(self, category: Optional[str] = None) -> list[InventoryItem]:
        if category is not None:
            require_choice(category, ITEM_CATEGORIES, "Category")
        return self.items.list_items(category)

    # ------------------------------------------------------------------
    # Stock events
    # ------------------------------------------------------------------
    def receive_stock(
        self,
        item_id: int,
        quantity: float,
        unit_cost: Optional[float] = None,
        reason: str | None = None,
        item_type: Optional[str] = None,
    ) -> Movement:
        """
        Book a receipt. With a `unit_cost` the weighted average is updated from
        the pre-receipt quantity first, and composites using the item are recosted.
        """
        qty = require_positive(quantity, "Quantity")
        cost = None if unit_cost is None else require_non_negative(unit_cost, "Unit cost")

        def chain() -> Movement:
            with immediate_tx(self.conn):
                self.ledger.require_item(item_id, item_type)
                if cost is not None:
                    self.valuation.apply_receipt(item_id, qty, cost)
                return self.ledger.record_movement(
                    item_id, qty, reason, item_type=item_type, movement_type="in"
                )

        return retry_on_conflict(chain, logger=self._log, label=f"receive item {item_id}")

    def consume_stock(
        self,
        item_id: int,
        quantity: float,
        reason: str | None = None,
        item_type: Optional[str] = None,
        *,
        allow_negative: bool = False,
    ) -> Movement:
        qty = require_positive(quantity, "Quantity")
        return self.ledger.record_movement(
            item_id, -qty, reason,
            item_type=item_type, movement_type="out", allow_negative=allow_negative,
        )

    def adjust_stock(
        self,
        item_id: int,
        delta: float,
        reason: str | None = None,
        item_type: Optional[str] = None,
        *,
        allow_negative: bool = False,
    ) -> Movement:
        return self.ledger.record_movement(
            item_id, delta, reason,
            item_type=item_type, movement_type="adjustment", allow_negative=allow_negative,
        )

    def receive_many(
        self,
        receipts: Iterable[Mapping[str, Any]],
        mode: BatchMode | str = BatchMode.ALL_OR_NOTHING,
    ) -> BatchReport:
        """Each receipt is a mapping of receive_stock keyword arguments."""
        return run_batch(
            self.conn, receipts, lambda r: self.receive_stock(**r), mode, logger=self._log
        )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------
    def low_stock_items(self) -> list[dict]:
        return self.items.low_stock()

    def inventory_value_by_category(self) -> dict:
        """
        Stock value per category (quantity x unit cost) plus the overall total.
        Categories without items are reported with zeros.
        """
        by_cat = {
            c: {"category": c, "item_count": 0, "total_quantity": 0.0, "total_value": 0.0}
            for c in ITEM_CATEGORIES
        }
        for row in self.items.value_by_category():
            by_cat[row["category"]] = {
                "category": row["category"],
                "item_count": int(row["item_count"]),
                "total_quantity": float(row["total_quantity"]),
                "total_value": round_money(row["total_value"]),
            }
        rows = [by_cat[c] for c in ITEM_CATEGORIES]
        return {
            "categories": rows,
            "total_value": round_money(sum(r["total_value"] for r in rows)),
        }
