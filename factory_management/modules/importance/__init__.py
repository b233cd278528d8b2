# factory_management/modules/importance/__init__.py

"""
Importance scoring package exports.

- ImportanceScorer: synchronous batch over the BOM graph (no Qt needed).
- ImportanceJob / ImportanceScheduler: run the scorer on a Qt thread pool,
  on demand or periodically.
"""

from .scorer import ImportanceScorer, importance_score
from .service import ImportanceJob, ImportanceScheduler

__all__ = [
    "ImportanceScorer",
    "importance_score",
    "ImportanceJob",
    "ImportanceScheduler",
]
