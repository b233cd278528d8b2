# factory_management/constants.py

APP_NAME = "Factory Management"

DATA_DIR = "data"
DB_FILE_NAME = "factory.db"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# seconds a writer waits for the SQLite write lock before giving up
BUSY_TIMEOUT_SEC = 10.0

MONEY_PLACES = 2
QTY_PLACES = 4

# ---- inventory ----
CATEGORY_RAW = "raw_material"
CATEGORY_PACKAGING = "packaging_material"
CATEGORY_SEMI = "semi_finished"
CATEGORY_FINISHED = "finished_product"
ITEM_CATEGORIES = (CATEGORY_RAW, CATEGORY_PACKAGING, CATEGORY_SEMI, CATEGORY_FINISHED)
COMPOSITE_CATEGORIES = (CATEGORY_SEMI, CATEGORY_FINISHED)

MOVEMENT_TYPES = ("in", "out", "adjustment")

# ---- BOM ----
INGREDIENT_RAW = "raw"
INGREDIENT_SEMI = "semi"
INGREDIENT_WATER = "water"
INGREDIENT_TYPES = (INGREDIENT_RAW, INGREDIENT_SEMI, INGREDIENT_WATER)
INGREDIENT_CATEGORY = {
    INGREDIENT_RAW: CATEGORY_RAW,
    INGREDIENT_SEMI: CATEGORY_SEMI,
}
PERCENT_TOLERANCE = 0.01

# importance = round(unique_parents * average_usage / scale)
RAW_IMPORTANCE_SCALE = 10
PACKAGING_IMPORTANCE_SCALE = 1
IMPORTANCE_INTERVAL_MINUTES = 360

# ---- ledger ----
PARTY_TYPES = ("customer", "supplier", "other")
BALANCE_TYPES = ("debit", "credit")

CANCELLABLE_TRANSACTION_TYPES = (
    "sale_invoice",
    "purchase_invoice",
    "payment_received",
    "payment_made",
    "sales_return",
    "purchase_return",
)
CANCEL_PREFIX = "cancel_"
LEDGER_TRANSACTION_TYPES = (
    *CANCELLABLE_TRANSACTION_TYPES,
    "opening_balance",
    "adjustment",
    *(CANCEL_PREFIX + t for t in CANCELLABLE_TRANSACTION_TYPES),
)

# re-read/re-apply attempts after a stale compare-and-swap
MAX_CONFLICT_RETRIES = 3
