"""
Headless entry point.

    python -m factory_management.main [--db PATH] [--once] [--interval MINUTES]

Initializes the database, then either runs the importance batch once or keeps a
QCoreApplication alive with the periodic scheduler.
"""
from __future__ import annotations

import argparse
import signal
import sys

from PySide6.QtCore import QCoreApplication, QTimer

from .config import DB_PATH, IMPORTANCE_INTERVAL_MINUTES
from .constants import APP_NAME
from .database import get_connection
from .modules.importance import ImportanceJob, ImportanceScheduler, ImportanceScorer
from .utils.loggers import get_logger, set_level

_log = get_logger("factory.main")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="factory_management", description=APP_NAME)
    p.add_argument("--db", default=str(DB_PATH), help="SQLite database file (default: %(default)s)")
    p.add_argument("--once", action="store_true", help="run the importance batch once and exit")
    p.add_argument(
        "--interval",
        type=int,
        default=IMPORTANCE_INTERVAL_MINUTES,
        help="minutes between importance runs (default: %(default)s)",
    )
    p.add_argument("--log-level", default="INFO")
    return p


def run_once(db_path: str) -> int:
    conn = get_connection(db_path)
    try:
        scores = ImportanceScorer(conn).run()
    finally:
        conn.close()
    _log.info("scored %d item(s)", len(scores))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    set_level(args.log_level)
    if args.interval <= 0:
        _log.error("--interval must be a positive number of minutes")
        return 2

    if args.once:
        return run_once(args.db)

    # schema + version check on the main thread before any worker connects
    get_connection(args.db).close()

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName(APP_NAME)
    job = ImportanceJob(args.db)
    job.finished.connect(
        lambda ok, msg, n: (_log.info if ok else _log.error)("%s", msg)
    )
    scheduler = ImportanceScheduler(job, args.interval, parent=app)
    scheduler.start(run_now=True)

    # Ctrl+C quits the event loop; the idle timer hands control back to Python so the handler runs
    wake = QTimer(app)
    wake.timeout.connect(lambda: None)
    wake.start(500)
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    _log.info("%s running against %s; Ctrl+C to stop", APP_NAME, args.db)
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
