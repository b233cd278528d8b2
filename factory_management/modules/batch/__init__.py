# factory_management/modules/batch/__init__.py

from .runner import BatchMode, BatchReport, SkippedRecord, run_batch

__all__ = [
    "BatchMode",
    "BatchReport",
    "SkippedRecord",
    "run_batch",
]
