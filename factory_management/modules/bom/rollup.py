"""
modules/bom/rollup.py

Unit cost of composite items (semi-finished and finished products) from their
bill of materials:

    cost = sum(pct / 100 * ingredient_cost)   over non-water ingredients
         + sum(qty * packaging_cost)          over packaging lines

rounded to money precision. Water carries no cost.

Water percentage is a snapshot: when a water line is written without an
explicit percentage it gets max(0, 100 - other percentages) at that moment and
is left alone afterwards, even when sibling lines change.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ...constants import (
    CATEGORY_PACKAGING,
    COMPOSITE_CATEGORIES,
    INGREDIENT_CATEGORY,
    INGREDIENT_TYPES,
    INGREDIENT_WATER,
    PERCENT_TOLERANCE,
)
from ...database.errors import NotFound, ValidationError
from ...database.repositories.bom_repo import BomIngredient, BomRepo, PackagingLine
from ...database.repositories.items_repo import InventoryItem, ItemsRepo
from ...database.transactions import immediate_tx
from ...utils.helpers import round_money
from ...utils.loggers import get_logger
from ...utils.validators import require_choice, require_number, require_positive
from .graph import BomGraph


def composite_cost(
    ingredients: Iterable[tuple[float, float]],
    packaging: Iterable[tuple[float, float]] = (),
) -> float:
    """
    `ingredients`: (percentage, unit_cost) pairs of the costed (non-water) lines.
    `packaging`:   (quantity, unit_cost) pairs.
    """
    total = sum(pct / 100.0 * cost for pct, cost in ingredients)
    total += sum(qty * cost for qty, cost in packaging)
    return round_money(total)


def water_fill(other_percentages: Iterable[float]) -> float:
    return max(0.0, 100.0 - sum(other_percentages))


def _check_composition(lines: Sequence[Mapping[str, Any]]) -> None:
    water = [ln for ln in lines if ln["ingredient_type"] == INGREDIENT_WATER]
    if len(water) > 1:
        raise ValidationError("A bill of materials can hold at most one water line.")
    for ln in lines:
        pct = float(ln["percentage"])
        if pct < 0 or pct > 100:
            raise ValidationError(f"Percentage must be between 0 and 100 (got {pct:g}).")
    if not water:
        total = sum(float(ln["percentage"]) for ln in lines)
        if abs(total - 100.0) > PERCENT_TOLERANCE:
            raise ValidationError(
                f"Ingredient percentages must add up to 100% (currently {total:g}%)."
            )


class BomCostRollup:
    def __init__(
        self,
        conn: sqlite3.Connection,
        items: ItemsRepo | None = None,
        bom: BomRepo | None = None,
        logger: logging.Logger | None = None,
    ):
        self.conn = conn
        self.items = items or ItemsRepo(conn)
        self.bom = bom or BomRepo(conn)
        self._log = logger or get_logger("factory.bom")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def _require_item(self, item_id: int) -> InventoryItem:
        item = self.items.get(item_id)
        if item is None:
            raise NotFound(f"Inventory item {item_id} does not exist.")
        return item

    def _require_parent(self, parent_id: int) -> InventoryItem:
        parent = self._require_item(parent_id)
        if parent.category not in COMPOSITE_CATEGORIES:
            raise ValidationError(
                f"{parent.code} is a {parent.category}; only semi-finished and finished "
                "products have a bill of materials."
            )
        return parent

    def _require_ingredient(self, parent_id: int, ingredient_type: str, ingredient_id: Optional[int]) -> None:
        require_choice(ingredient_type, INGREDIENT_TYPES, "Ingredient type")
        if ingredient_type == INGREDIENT_WATER:
            if ingredient_id is not None:
                raise ValidationError("A water line does not reference an item.")
            return
        if ingredient_id is None:
            raise ValidationError(f"A {ingredient_type} ingredient needs an item.")
        if int(ingredient_id) == int(parent_id):
            raise ValidationError("An item cannot be an ingredient of itself.")
        item = self._require_item(ingredient_id)
        expected = INGREDIENT_CATEGORY[ingredient_type]
        if item.category != expected:
            raise ValidationError(
                f"{item.code} is a {item.category}, not a {expected}."
            )

    def _require_packaging(self, parent_id: int, packaging_item_id: int) -> None:
        if int(packaging_item_id) == int(parent_id):
            raise ValidationError("An item cannot package itself.")
        item = self._require_item(packaging_item_id)
        if item.category != CATEGORY_PACKAGING:
            raise ValidationError(f"{item.code} is a {item.category}, not a packaging material.")

    def bom_for(self, parent_id: int) -> dict:
        self._require_item(parent_id)
        return {
            "parent_item_id": parent_id,
            "ingredients": self.bom.ingredients_for(parent_id),
            "packaging": self.bom.packaging_for(parent_id),
        }

    # ------------------------------------------------------------------
    # Cost
    # ------------------------------------------------------------------
    def compute_cost(self, parent_id: int) -> float:
        """Cost from the current lines, without writing it."""
        ingredients: List[tuple[float, float]] = []
        for ln in self.bom.ingredients_for(parent_id):
            if ln.ingredient_type == INGREDIENT_WATER:
                continue
            comp = self._require_item(ln.ingredient_id)
            ingredients.append((float(ln.percentage), float(comp.unit_cost)))
        packaging: List[tuple[float, float]] = []
        for pl in self.bom.packaging_for(parent_id):
            comp = self._require_item(pl.packaging_item_id)
            packaging.append((float(pl.quantity), float(comp.unit_cost)))
        return composite_cost(ingredients, packaging)

    def recompute(self, parent_id: int) -> float:
        """Write the BOM cost of one composite; items without lines keep their cost."""
        with immediate_tx(self.conn):
            parent = self._require_parent(parent_id)
            if not self.bom.ingredients_for(parent_id) and not self.bom.packaging_for(parent_id):
                return float(parent.unit_cost)
            new_cost = self.compute_cost(parent_id)
            old_cost = float(parent.unit_cost)
            if new_cost != old_cost:
                self.items.update_unit_cost(parent_id, new_cost, expected=parent.unit_cost)
                self.items.add_cost_history(parent_id, old_cost, new_cost, "bom_rollup")
                self._log.info("BOM cost of %s: %.2f -> %.2f", parent.code, old_cost, new_cost)
        return new_cost

    def propagate_from(self, item_id: int) -> List[int]:
        """
        Recompute every composite that depends on `item_id`, components first.
        Returns the ids recomputed, in order.
        """
        with immediate_tx(self.conn):
            graph = BomGraph.load(self.bom)
            order = graph.topological_order(graph.dependents(item_id))
            for parent_id in order:
                self.recompute(parent_id)
        if order:
            self._log.debug("propagated cost of item %s to %d composite(s)", item_id, len(order))
        return order

    def recompute_all(self) -> int:
        with immediate_tx(self.conn):
            graph = BomGraph.load(self.bom)
            order = graph.topological_order(self.bom.parents())
            for parent_id in order:
                self.recompute(parent_id)
        self._log.info("recomputed BOM cost of %d composite(s)", len(order))
        return len(order)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def _settle(self, parent_id: int) -> None:
        """Recost an edited composite, then everything built from it."""
        self.recompute(parent_id)
        self.propagate_from(parent_id)

    def save_bom(
        self,
        parent_id: int,
        ingredients: Iterable[Mapping[str, Any]],
        packaging: Iterable[Mapping[str, Any]] = (),
    ) -> dict:
        """
        Replace a composite's whole bill of materials.

        `ingredients`: mappings with `ingredient_type`, `ingredient_id` (None for
        water) and `percentage` (optional for water).
        `packaging`: mappings with `packaging_item_id` and `quantity`.
        """
        lines = [dict(ln) for ln in ingredients]
        packs = [dict(p) for p in packaging]

        with immediate_tx(self.conn):
            self._require_parent(parent_id)

            seen: set[int] = set()
            for ln in lines:
                ln.setdefault("ingredient_id", None)
                self._require_ingredient(parent_id, ln["ingredient_type"], ln["ingredient_id"])
                if ln["ingredient_id"] is not None:
                    if int(ln["ingredient_id"]) in seen:
                        raise ValidationError(f"Item {ln['ingredient_id']} is listed twice.")
                    seen.add(int(ln["ingredient_id"]))
                if ln.get("percentage") is not None:
                    ln["percentage"] = require_number(ln["percentage"], "Percentage")
                elif ln["ingredient_type"] != INGREDIENT_WATER:
                    raise ValidationError("Every ingredient except water needs a percentage.")

            others = [ln["percentage"] for ln in lines if ln["ingredient_type"] != INGREDIENT_WATER]
            for ln in lines:
                if ln["ingredient_type"] == INGREDIENT_WATER and ln.get("percentage") is None:
                    ln["percentage"] = water_fill(others)
            _check_composition(lines)

            pack_seen: set[int] = set()
            for p in packs:
                self._require_packaging(parent_id, p["packaging_item_id"])
                p["quantity"] = require_positive(p.get("quantity"), "Packaging quantity")
                if int(p["packaging_item_id"]) in pack_seen:
                    raise ValidationError(f"Packaging item {p['packaging_item_id']} is listed twice.")
                pack_seen.add(int(p["packaging_item_id"]))

            graph = BomGraph.load(self.bom)
            graph.replace_children(
                parent_id,
                [int(ln["ingredient_id"]) for ln in lines if ln["ingredient_id"] is not None]
                + [int(p["packaging_item_id"]) for p in packs],
            )

            self.bom.clear(parent_id)
            for ln in lines:
                self.bom.insert_ingredient(
                    parent_id, ln["ingredient_type"], ln["ingredient_id"], ln["percentage"]
                )
            for p in packs:
                self.bom.insert_packaging(parent_id, p["packaging_item_id"], p["quantity"])
            self._settle(parent_id)

        self._log.info(
            "BOM of item %s saved: %d ingredient(s), %d packaging line(s)",
            parent_id, len(lines), len(packs),
        )
        return self.bom_for(parent_id)

    def add_ingredient(
        self,
        parent_id: int,
        ingredient_type: str,
        ingredient_id: Optional[int] = None,
        percentage: Optional[float] = None,
    ) -> BomIngredient:
        with immediate_tx(self.conn):
            self._require_parent(parent_id)
            self._require_ingredient(parent_id, ingredient_type, ingredient_id)
            current = self.bom.ingredients_for(parent_id)
            if ingredient_id is not None and any(ln.ingredient_id == ingredient_id for ln in current):
                raise ValidationError(f"Item {ingredient_id} is already an ingredient.")

            if percentage is not None:
                pct = require_number(percentage, "Percentage")
            elif ingredient_type == INGREDIENT_WATER:
                pct = water_fill(
                    ln.percentage for ln in current if ln.ingredient_type != INGREDIENT_WATER
                )
            else:
                raise ValidationError("Every ingredient except water needs a percentage.")

            _check_composition(
                [{"ingredient_type": ln.ingredient_type, "percentage": ln.percentage} for ln in current]
                + [{"ingredient_type": ingredient_type, "percentage": pct}]
            )
            if ingredient_id is not None:
                graph = BomGraph.load(self.bom)
                graph.add_edge(parent_id, int(ingredient_id))

            line_id = self.bom.insert_ingredient(parent_id, ingredient_type, ingredient_id, pct)
            self._settle(parent_id)
        return self.bom.get_line(line_id)

    def update_ingredient_percentage(self, bom_line_id: int, percentage: float) -> BomIngredient:
        """Operator edit of one line; the only way a water snapshot changes."""
        pct = require_number(percentage, "Percentage")
        with immediate_tx(self.conn):
            line = self.bom.get_line(bom_line_id)
            if line is None:
                raise NotFound(f"BOM line {bom_line_id} does not exist.")
            current = self.bom.ingredients_for(line.parent_item_id)
            _check_composition(
                [
                    {
                        "ingredient_type": ln.ingredient_type,
                        "percentage": pct if ln.bom_line_id == bom_line_id else ln.percentage,
                    }
                    for ln in current
                ]
            )
            self.bom.update_percentage(bom_line_id, pct)
            self._settle(line.parent_item_id)
        return self.bom.get_line(bom_line_id)

    def remove_ingredient(self, bom_line_id: int) -> None:
        """Drop one line; a composite always keeps at least one ingredient."""
        with immediate_tx(self.conn):
            line = self.bom.get_line(bom_line_id)
            if line is None:
                raise NotFound(f"BOM line {bom_line_id} does not exist.")
            remaining = [
                {"ingredient_type": ln.ingredient_type, "percentage": ln.percentage}
                for ln in self.bom.ingredients_for(line.parent_item_id)
                if ln.bom_line_id != bom_line_id
            ]
            if not remaining:
                raise ValidationError(
                    "Cannot remove the last ingredient; save a replacement bill of materials instead."
                )
            _check_composition(remaining)
            self.bom.delete_ingredient(bom_line_id)
            self._settle(line.parent_item_id)

    def add_packaging(self, parent_id: int, packaging_item_id: int, quantity: float) -> PackagingLine:
        qty = require_positive(quantity, "Packaging quantity")
        with immediate_tx(self.conn):
            self._require_parent(parent_id)
            self._require_packaging(parent_id, packaging_item_id)
            if any(p.packaging_item_id == packaging_item_id for p in self.bom.packaging_for(parent_id)):
                raise ValidationError(f"Item {packaging_item_id} is already a packaging line.")
            graph = BomGraph.load(self.bom)
            graph.add_edge(parent_id, int(packaging_item_id))
            line_id = self.bom.insert_packaging(parent_id, packaging_item_id, qty)
            self._settle(parent_id)
        return next(p for p in self.bom.packaging_for(parent_id) if p.packaging_line_id == line_id)
