# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from factory_management.database.repositories import (
        # Inventory
        ItemsRepo, InventoryItem, MovementsRepo, Movement,
        # Bill of materials
        BomRepo, BomIngredient, PackagingLine,
        # Ledger
        PartiesRepo, Party, LedgerRepo, LedgerEntry,
    )

Repositories never open or commit transactions; callers wrap writes in
database.transactions.immediate_tx.
"""

# ---------------- Inventory ----------------
from .items_repo import ItemsRepo, InventoryItem
from .movements_repo import MovementsRepo, Movement

# ------------- Bill of materials -----------
from .bom_repo import BomRepo, BomIngredient, PackagingLine

# ------------------ Ledger -----------------
from .parties_repo import PartiesRepo, Party
from .ledger_repo import LedgerRepo, LedgerEntry

__all__ = [
    # items_repo
    "ItemsRepo",
    "InventoryItem",
    # movements_repo
    "MovementsRepo",
    "Movement",
    # bom_repo
    "BomRepo",
    "BomIngredient",
    "PackagingLine",
    # parties_repo
    "PartiesRepo",
    "Party",
    # ledger_repo
    "LedgerRepo",
    "LedgerEntry",
]
