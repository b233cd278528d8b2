"""
modules/inventory/valuation.py

Moving weighted-average unit cost.

The engine must see the quantity *before* the receipt is booked; the stock
chain (InventoryService.receive_stock) runs it ahead of the movement in the
same transaction. Consumption never changes the unit cost. A changed cost is
propagated to dependent composites by the BOM roll-up.
"""

from __future__ import annotations

import logging
import sqlite3

from ...database.errors import NotFound
from ...database.repositories.items_repo import InventoryItem, ItemsRepo
from ...database.transactions import immediate_tx
from ...utils.helpers import round_money
from ...utils.loggers import get_logger
from ...utils.retry import retry_on_conflict
from ...utils.validators import require_non_negative, require_positive
from ..bom.rollup import BomCostRollup


def weighted_average_cost(
    current_qty: float,
    current_cost: float,
    received_qty: float,
    received_cost: float,
) -> float:
    """
    New unit cost after receiving `received_qty` at `received_cost`.

    With nothing (or a deficit) on hand the receipt cost is taken as is;
    otherwise the blended cost is rounded to money precision.
    """
    if current_qty <= 0:
        return float(received_cost)
    total_value = current_qty * current_cost + received_qty * received_cost
    return round_money(total_value / (current_qty + received_qty))


class ValuationEngine:
    def __init__(
        self,
        conn: sqlite3.Connection,
        items: ItemsRepo | None = None,
        rollup: BomCostRollup | None = None,
        logger: logging.Logger | None = None,
    ):
        self.conn = conn
        self.items = items or ItemsRepo(conn)
        self.rollup = rollup or BomCostRollup(conn, self.items)
        self._log = logger or get_logger("factory.valuation")

    def apply_receipt(self, item_id: int, received_qty: float, received_unit_cost: float) -> float:
        """
        Blend a receipt into the item's unit cost and return the new cost.
        A changed cost is rolled up into every composite built from the item
        before the transaction commits.
        """
        rq = require_positive(received_qty, "Received quantity")
        rc = require_non_negative(received_unit_cost, "Received unit cost")

        def work() -> tuple[InventoryItem, float]:
            with immediate_tx(self.conn):
                item = self.items.get(item_id)
                if item is None:
                    raise NotFound(f"Inventory item {item_id} does not exist.")
                old_cost = float(item.unit_cost)
                new_cost = weighted_average_cost(float(item.quantity), old_cost, rq, rc)
                if new_cost != old_cost:
                    self.items.update_unit_cost(item_id, new_cost, expected=item.unit_cost)
                    self.items.add_cost_history(item_id, old_cost, new_cost, "receipt")
                    self.rollup.propagate_from(item_id)
            return item, new_cost

        item, new_cost = retry_on_conflict(work, logger=self._log, label=f"value receipt of item {item_id}")
        if new_cost != float(item.unit_cost):
            self._log.info("unit cost of %s: %.2f -> %.2f", item.code, float(item.unit_cost), new_cost)
        return new_cost
