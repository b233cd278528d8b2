"""
modules/importance/service.py

Purpose
-------
Run the importance batch off the calling thread and report back through Qt
signals; optionally re-run it on a timer.

Public interface
----------------
- ImportanceJob.run_async() -> bool
    finished(success: bool, message: str, scored: int)
- ImportanceScheduler.start(run_now=True) / stop() / trigger()

The worker opens its own SQLite connection (connections are thread-bound).
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from PySide6.QtCore import QObject, QRunnable, QThreadPool, QTimer, Signal, Slot

from ...config import IMPORTANCE_INTERVAL_MINUTES
from ...database import get_connection
from ...utils.loggers import get_logger
from .scorer import ImportanceScorer


def _fmt_err(msg: str, exc: BaseException | None = None) -> str:
    if exc is None:
        return msg
    return f"{msg}\n\n{exc.__class__.__name__}: {exc}"


class _JobRunnable(QRunnable):
    """
    Thin QRunnable wrapper that executes a callable on the pool.
    """
    def __init__(self, work: Callable[[], None]) -> None:
        super().__init__()
        self.setAutoDelete(True)
        self._work = work

    @Slot()
    def run(self) -> None:  # type: ignore[override]
        self._work()


class ImportanceJob(QObject):
    """
    One importance run at a time; run_async() while a run is in flight is refused.
    """
    started = Signal()
    finished = Signal(bool, str, int)

    def __init__(
        self,
        db_path: Path | str | None = None,
        pool: QThreadPool | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__()
        self._db_path = db_path
        self._pool = pool or QThreadPool.globalInstance()
        self._log = logger or get_logger("factory.importance")
        self._lock = threading.Lock()
        self._running = False

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def run_async(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._running = True
        self.started.emit()
        self._pool.start(_JobRunnable(self._run))
        return True

    # ---- core workflow (runs in worker thread) ----
    def _run(self) -> None:
        conn = None
        ok, message, scored = False, "", 0
        try:
            conn = get_connection(self._db_path)
            scores = ImportanceScorer(conn, logger=self._log).run()
            scored = len(scores)
            ok, message = True, f"Importance updated for {scored} item(s)."
        except Exception as e:
            self._log.exception("importance job failed")
            message = _fmt_err("Importance update failed.", e)
        finally:
            if conn is not None:
                conn.close()
            with self._lock:
                self._running = False
        self.finished.emit(ok, message, scored)


class ImportanceScheduler(QObject):
    """Fires ImportanceJob every `interval_minutes`; skips a tick while a run is still going."""

    def __init__(
        self,
        job: ImportanceJob,
        interval_minutes: int | None = None,
        parent: QObject | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(parent)
        self.job = job
        self._log = logger or get_logger("factory.importance")
        minutes = int(interval_minutes or IMPORTANCE_INTERVAL_MINUTES)
        self._timer = QTimer(self)
        self._timer.setInterval(max(1, minutes) * 60_000)
        self._timer.timeout.connect(self.trigger)

    def interval_ms(self) -> int:
        return self._timer.interval()

    def is_active(self) -> bool:
        return self._timer.isActive()

    def start(self, run_now: bool = True) -> None:
        self._timer.start()
        self._log.info("importance scheduler started (every %d min)", self._timer.interval() // 60_000)
        if run_now:
            self.trigger()

    def stop(self) -> None:
        self._timer.stop()

    @Slot()
    def trigger(self) -> bool:
        if self.job.is_running():
            self._log.warning("importance run still in progress; tick skipped")
            return False
        return self.job.run_async()
