"""
modules/batch/runner.py

Apply a sequence of records through one engine operation, either as a single
atomic unit or record by record.

- ALL_OR_NOTHING: one transaction around the whole batch; the first failure
  rolls everything back and propagates unchanged.
- BEST_EFFORT: one savepoint per record inside the batch transaction; a failing
  record is rolled back to its savepoint, reported and skipped.
"""

from __future__ import annotations

import enum
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List

from ...database.errors import DomainError
from ...database.transactions import immediate_tx
from ...utils.loggers import get_logger

_log = get_logger("factory.batch")


class BatchMode(str, enum.Enum):
    ALL_OR_NOTHING = "all_or_nothing"
    BEST_EFFORT = "best_effort"


@dataclass
class SkippedRecord:
    index: int
    record: Any
    error: str


@dataclass
class BatchReport:
    applied: List[Any] = field(default_factory=list)
    skipped: List[SkippedRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.skipped


def run_batch(
    conn: sqlite3.Connection,
    records: Iterable[Any],
    apply: Callable[[Any], Any],
    mode: BatchMode | str = BatchMode.ALL_OR_NOTHING,
    *,
    logger: logging.Logger | None = None,
) -> BatchReport:
    """
    Run `apply(record)` for every record on `conn` and collect the results.

    `apply` is expected to open its own immediate_tx on the same connection; it
    becomes a savepoint inside the batch transaction.
    """
    log = logger or _log
    mode = BatchMode(mode)
    report = BatchReport()
    items = list(records)

    with immediate_tx(conn):
        for idx, rec in enumerate(items):
            if mode is BatchMode.ALL_OR_NOTHING:
                report.applied.append(apply(rec))
                continue
            try:
                with immediate_tx(conn):
                    report.applied.append(apply(rec))
            except (DomainError, sqlite3.Error) as e:
                log.warning("batch record %d skipped: %s", idx, e)
                report.skipped.append(SkippedRecord(idx, rec, str(e)))

    log.info(
        "batch (%s) finished: %d applied, %d skipped",
        mode.value, len(report.applied), len(report.skipped),
    )
    return report
