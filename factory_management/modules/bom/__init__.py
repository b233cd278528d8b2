# factory_management/modules/bom/__init__.py

from .graph import BomGraph
from .rollup import BomCostRollup, composite_cost

__all__ = [
    "BomGraph",
    "BomCostRollup",
    "composite_cost",
]
