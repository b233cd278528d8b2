"""Factory management core: inventory valuation, BOM costing and party ledgers."""

__version__ = "1.0.0"
