"""
modules/inventory/movement_ledger.py

Append-only stock movement log. Every change to an item's on-hand quantity is
written here together with the quantity update, in one unit of work.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from ...constants import ITEM_CATEGORIES, MOVEMENT_TYPES
from ...database.errors import NotFound, ValidationError
from ...database.repositories.items_repo import InventoryItem, ItemsRepo
from ...database.repositories.movements_repo import Movement, MovementsRepo
from ...database.transactions import immediate_tx
from ...utils.helpers import round_qty
from ...utils.loggers import get_logger
from ...utils.retry import retry_on_conflict
from ...utils.validators import require_choice, require_number


def _classify(quantity: float) -> str:
    return "in" if quantity > 0 else "out"


class MovementLedger:
    def __init__(
        self,
        conn: sqlite3.Connection,
        items: ItemsRepo | None = None,
        movements: MovementsRepo | None = None,
        logger: logging.Logger | None = None,
    ):
        self.conn = conn
        self.items = items or ItemsRepo(conn)
        self.movements = movements or MovementsRepo(conn)
        self._log = logger or get_logger("factory.inventory")

    def require_item(self, item_id: int, item_type: Optional[str] = None) -> InventoryItem:
        """Fetch an item, checking its category when `item_type` is given."""
        item = self.items.get(item_id)
        if item is None:
            raise NotFound(f"Inventory item {item_id} does not exist.")
        if item_type is not None and item.category != item_type:
            raise NotFound(f"No {item_type} with id {item_id} (item is {item.category}).")
        return item

    def record_movement(
        self,
        item_id: int,
        quantity: float,
        reason: str | None = None,
        *,
        item_type: Optional[str] = None,
        movement_type: Optional[str] = None,
        allow_negative: bool = False,
    ) -> Movement:
        """
        Append a signed movement and move the item's quantity by the same amount.

        `movement_type` defaults to 'in'/'out' by sign; 'adjustment' may carry
        either sign. The quantity write is a compare-and-swap against the value
        read here; a concurrent writer forces a re-read and a fresh attempt.
        """
        qty = round_qty(require_number(quantity, "Quantity"))
        if qty == 0:
            raise ValidationError("Movement quantity cannot be zero.")
        if item_type is not None:
            require_choice(item_type, ITEM_CATEGORIES, "Item type")
        if movement_type is not None:
            require_choice(movement_type, MOVEMENT_TYPES, "Movement type")
            if movement_type == "in" and qty < 0:
                raise ValidationError("An 'in' movement must have a positive quantity.")
            if movement_type == "out" and qty > 0:
                raise ValidationError("An 'out' movement must have a negative quantity.")
        mtype = movement_type or _classify(qty)

        def work() -> tuple[InventoryItem, int, float]:
            with immediate_tx(self.conn):
                item = self.require_item(item_id, item_type)
                new_balance = round_qty(float(item.quantity) + qty)
                if new_balance < 0 and not allow_negative:
                    raise ValidationError(
                        f"Insufficient stock for {item.code}: on hand {item.quantity:g}, "
                        f"requested {abs(qty):g}."
                    )
                movement_id = self.movements.insert(
                    item_id=item_id,
                    item_type=item.category,
                    movement_type=mtype,
                    quantity=qty,
                    balance_after=new_balance,
                    reason=reason,
                )
                self.items.update_quantity(item_id, new_balance, expected=item.quantity)
            return item, movement_id, new_balance

        item, movement_id, new_balance = retry_on_conflict(
            work, logger=self._log, label=f"move item {item_id}"
        )
        self._log.info(
            "movement #%s %s %+g on %s -> %g", movement_id, mtype, qty, item.code, new_balance
        )
        return self.movements.get(movement_id)

    def list_movements(self, item_id: int, limit: Optional[int] = None) -> list[Movement]:
        return self.movements.list_for_item(item_id, limit)

    def find_movements(
        self,
        *,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        item_type: Optional[str] = None,
        movement_type: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> list[dict]:
        return self.movements.find(
            date_from=date_from,
            date_to=date_to,
            item_type=item_type,
            movement_type=movement_type,
            search=search,
            limit=limit,
        )

    def reconcile(self, item_id: int) -> dict:
        """
        Replay an item's movements.

        Returns a dict with the expected quantity (opening + sum of movements),
        the stored quantity, the ids of movements whose balance_after does not
        chain from their predecessor, and `consistent`.
        """
        item = self.require_item(item_id)
        running = float(item.opening_quantity)
        broken: list[int] = []
        for mv in self.movements.list_for_item(item_id):
            running = round_qty(running + float(mv.quantity))
            if round_qty(mv.balance_after) != running:
                broken.append(int(mv.movement_id))
        expected = round_qty(running)
        stored = round_qty(item.quantity)
        return {
            "item_id": item_id,
            "opening_quantity": float(item.opening_quantity),
            "movement_total": round_qty(self.movements.sum_quantity(item_id)),
            "expected_quantity": expected,
            "quantity": stored,
            "broken_movements": broken,
            "consistent": expected == stored and not broken,
        }
