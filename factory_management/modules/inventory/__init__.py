# factory_management/modules/inventory/__init__.py

from .movement_ledger import MovementLedger
from .valuation import ValuationEngine, weighted_average_cost
from .service import InventoryService

__all__ = [
    "MovementLedger",
    "ValuationEngine",
    "weighted_average_cost",
    "InventoryService",
]
