import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME, IMPORTANCE_INTERVAL_MINUTES as _DEFAULT_INTERVAL

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = BASE_DIR / DATA_DIR

# FACTORY_DB_PATH points the app at another database file (tests, staging copies)
DB_PATH = Path(os.environ.get("FACTORY_DB_PATH") or (DATA_PATH / DB_FILE_NAME))

IMPORTANCE_INTERVAL_MINUTES = int(
    os.environ.get("FACTORY_IMPORTANCE_INTERVAL_MINUTES") or _DEFAULT_INTERVAL
)
