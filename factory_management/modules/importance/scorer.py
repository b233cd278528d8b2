"""
modules/importance/scorer.py

importance = round_half_up(distinct_parents * average_usage / scale)

- raw materials:       usage = ingredient percentage, scale RAW_IMPORTANCE_SCALE
- packaging materials: usage = per-unit quantity,     scale PACKAGING_IMPORTANCE_SCALE

Items nothing uses score 0. Scores are rewritten wholesale in one transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict

from ...constants import (
    CATEGORY_PACKAGING,
    CATEGORY_RAW,
    INGREDIENT_RAW,
    PACKAGING_IMPORTANCE_SCALE,
    RAW_IMPORTANCE_SCALE,
)
from ...database.repositories.bom_repo import BomRepo
from ...database.repositories.items_repo import ItemsRepo
from ...database.transactions import immediate_tx
from ...utils.helpers import round_half_up
from ...utils.loggers import get_logger


def importance_score(parents: int, average_usage: float, scale: float) -> int:
    if not parents:
        return 0
    return round_half_up(parents * float(average_usage or 0.0) / scale)


class ImportanceScorer:
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
        self._log = logger or get_logger("factory.importance")

    def compute(self) -> Dict[int, int]:
        """Scores for every raw and packaging material, without writing them."""
        scores: Dict[int, int] = {}
        for item in self.items.list_items(CATEGORY_RAW):
            scores[item.item_id] = 0
        for item in self.items.list_items(CATEGORY_PACKAGING):
            scores[item.item_id] = 0

        for row in self.bom.ingredient_usage(INGREDIENT_RAW):
            scores[int(row["item_id"])] = importance_score(
                int(row["parents"]), row["average_usage"], RAW_IMPORTANCE_SCALE
            )
        for row in self.bom.packaging_usage():
            scores[int(row["item_id"])] = importance_score(
                int(row["parents"]), row["average_usage"], PACKAGING_IMPORTANCE_SCALE
            )
        return scores

    def run(self) -> Dict[int, int]:
        with immediate_tx(self.conn):
            scores = self.compute()
            self.items.set_importance_many(scores.items())
        used = sum(1 for s in scores.values() if s)
        self._log.info("importance recomputed for %d item(s), %d in use", len(scores), used)
        return scores
