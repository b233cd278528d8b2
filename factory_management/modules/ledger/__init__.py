# factory_management/modules/ledger/__init__.py

from .engine import LedgerEngine
from .statements import AccountStatements

__all__ = [
    "LedgerEngine",
    "AccountStatements",
]
