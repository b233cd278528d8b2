from pathlib import Path
import sqlite3
import sys

from ..constants import BUSY_TIMEOUT_SEC
from ..utils.loggers import get_logger

_log = get_logger("factory.schema")

SQL = r"""
PRAGMA foreign_keys = ON;

/* ======================== PARTIES ======================== */

CREATE TABLE IF NOT EXISTS parties (
    party_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    party_type      TEXT NOT NULL CHECK (party_type IN ('customer','supplier','other')),
    opening_balance REAL NOT NULL DEFAULT 0 CHECK (opening_balance >= 0),
    balance_type    TEXT NOT NULL DEFAULT 'debit' CHECK (balance_type IN ('debit','credit')),
    created_at      TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_parties_type ON parties(party_type, party_id);

/* cached running balance: balance_after of the party's last entry (or signed opening) */
CREATE TABLE IF NOT EXISTS party_balances (
    party_id     INTEGER PRIMARY KEY,
    balance      REAL NOT NULL DEFAULT 0,
    last_updated TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (party_id) REFERENCES parties(party_id) ON DELETE CASCADE
);

/* ======================== PARTY LEDGER ======================== */

CREATE TABLE IF NOT EXISTS ledger_entries (
    entry_id         INTEGER PRIMARY KEY AUTOINCREMENT,  -- insertion sequence
    party_id         INTEGER NOT NULL,
    date             DATE    NOT NULL,                   -- business date 'YYYY-MM-DD'
    transaction_type TEXT    NOT NULL CHECK (transaction_type IN (
        'sale_invoice','purchase_invoice','payment_received','payment_made',
        'sales_return','purchase_return','opening_balance','adjustment',
        'cancel_sale_invoice','cancel_purchase_invoice','cancel_payment_received',
        'cancel_payment_made','cancel_sales_return','cancel_purchase_return')),
    debit            REAL NOT NULL DEFAULT 0 CHECK (debit  >= 0),
    credit           REAL NOT NULL DEFAULT 0 CHECK (credit >= 0),
    balance_after    REAL NOT NULL,
    reference        TEXT,
    notes            TEXT,
    cancels_entry_id INTEGER,
    created_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (party_id)         REFERENCES parties(party_id),
    FOREIGN KEY (cancels_entry_id) REFERENCES ledger_entries(entry_id)
);
CREATE INDEX IF NOT EXISTS idx_ledger_party_order
  ON ledger_entries(party_id, date, entry_id);
CREATE INDEX IF NOT EXISTS idx_ledger_date ON ledger_entries(date);
/* one cancellation per entry */
CREATE UNIQUE INDEX IF NOT EXISTS idx_ledger_one_cancel
  ON ledger_entries(cancels_entry_id) WHERE cancels_entry_id IS NOT NULL;

/* ======================== INVENTORY ======================== */

CREATE TABLE IF NOT EXISTS inventory_items (
    item_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    code             TEXT NOT NULL UNIQUE,
    name             TEXT NOT NULL,
    category         TEXT NOT NULL CHECK (category IN
         ('raw_material','packaging_material','semi_finished','finished_product')),
    unit             TEXT,
    opening_quantity REAL NOT NULL DEFAULT 0,
    quantity         REAL NOT NULL DEFAULT 0,
    unit_cost        REAL NOT NULL DEFAULT 0 CHECK (unit_cost >= 0),
    min_stock        REAL NOT NULL DEFAULT 0 CHECK (min_stock >= 0),
    importance       INTEGER NOT NULL DEFAULT 0,
    created_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at       TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_items_category ON inventory_items(category, item_id);

/* -------- movement log (append-only) -------- */
CREATE TABLE IF NOT EXISTS inventory_movements (
    movement_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id       INTEGER NOT NULL,
    item_type     TEXT    NOT NULL,
    movement_type TEXT    NOT NULL CHECK (movement_type IN ('in','out','adjustment')),
    quantity      REAL    NOT NULL CHECK (quantity <> 0),  -- signed
    balance_after REAL    NOT NULL,
    reason        TEXT,
    created_at    TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (item_id) REFERENCES inventory_items(item_id)
);
CREATE INDEX IF NOT EXISTS idx_movements_item_order
  ON inventory_movements(item_id, movement_id);
CREATE INDEX IF NOT EXISTS idx_movements_created ON inventory_movements(created_at);

/* -------- unit cost journal -------- */
CREATE TABLE IF NOT EXISTS item_cost_history (
    history_id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id    INTEGER NOT NULL,
    old_cost   REAL    NOT NULL,
    new_cost   REAL    NOT NULL,
    reason     TEXT    NOT NULL CHECK (reason IN ('receipt','bom_rollup')),
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (item_id) REFERENCES inventory_items(item_id)
);
CREATE INDEX IF NOT EXISTS idx_cost_history_item
  ON item_cost_history(item_id, history_id);

/* ======================== BILL OF MATERIALS ======================== */

CREATE TABLE IF NOT EXISTS bom_ingredients (
    bom_line_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    parent_item_id  INTEGER NOT NULL,
    ingredient_type TEXT    NOT NULL CHECK (ingredient_type IN ('raw','semi','water')),
    ingredient_id   INTEGER,
    percentage      REAL    NOT NULL CHECK (percentage >= 0 AND percentage <= 100),
    created_at      TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    CHECK ((ingredient_type = 'water') = (ingredient_id IS NULL)),
    CHECK (ingredient_id IS NULL OR ingredient_id <> parent_item_id),
    FOREIGN KEY (parent_item_id) REFERENCES inventory_items(item_id),
    FOREIGN KEY (ingredient_id)  REFERENCES inventory_items(item_id)
);
CREATE INDEX IF NOT EXISTS idx_bom_parent     ON bom_ingredients(parent_item_id);
CREATE INDEX IF NOT EXISTS idx_bom_ingredient ON bom_ingredients(ingredient_id);
/* at most one water line per parent */
CREATE UNIQUE INDEX IF NOT EXISTS idx_bom_one_water
  ON bom_ingredients(parent_item_id) WHERE ingredient_type = 'water';
/* an ingredient appears once per parent */
CREATE UNIQUE INDEX IF NOT EXISTS idx_bom_unique_ingredient
  ON bom_ingredients(parent_item_id, ingredient_id) WHERE ingredient_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS bom_packaging (
    packaging_line_id INTEGER PRIMARY KEY AUTOINCREMENT,
    parent_item_id    INTEGER NOT NULL,
    packaging_item_id INTEGER NOT NULL,
    quantity          REAL    NOT NULL CHECK (quantity > 0),  -- per unit of parent
    UNIQUE(parent_item_id, packaging_item_id),
    CHECK (packaging_item_id <> parent_item_id),
    FOREIGN KEY (parent_item_id)    REFERENCES inventory_items(item_id),
    FOREIGN KEY (packaging_item_id) REFERENCES inventory_items(item_id)
);
CREATE INDEX IF NOT EXISTS idx_bom_packaging_item ON bom_packaging(packaging_item_id);

/* ======================== IMMUTABILITY GUARDS ======================== */

/* only the derived balance_after may change on a posted entry */
DROP TRIGGER IF EXISTS trg_ledger_entries_immutable;
CREATE TRIGGER trg_ledger_entries_immutable
BEFORE UPDATE OF entry_id, party_id, date, transaction_type, debit, credit,
                 reference, notes, cancels_entry_id, created_at
ON ledger_entries
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Ledger entries are immutable; post a compensating entry');
END;

DROP TRIGGER IF EXISTS trg_ledger_entries_no_delete;
CREATE TRIGGER trg_ledger_entries_no_delete
BEFORE DELETE ON ledger_entries
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Ledger entries cannot be deleted; post a cancellation');
END;

DROP TRIGGER IF EXISTS trg_movements_no_update;
CREATE TRIGGER trg_movements_no_update
BEFORE UPDATE ON inventory_movements
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Inventory movements are append-only');
END;

DROP TRIGGER IF EXISTS trg_movements_no_delete;
CREATE TRIGGER trg_movements_no_delete
BEFORE DELETE ON inventory_movements
FOR EACH ROW
BEGIN
  SELECT RAISE(ABORT, 'Inventory movements are append-only');
END;

/* category is the movement/valuation discriminant; freeze it once stock moved */
DROP TRIGGER IF EXISTS trg_lock_item_category_after_activity;
CREATE TRIGGER trg_lock_item_category_after_activity
BEFORE UPDATE OF category ON inventory_items
FOR EACH ROW
WHEN NEW.category <> OLD.category
 AND EXISTS (SELECT 1 FROM inventory_movements m WHERE m.item_id = OLD.item_id)
BEGIN
  SELECT RAISE(ABORT, 'Cannot change category of an item with movements');
END;

/* ======================== VIEWS ======================== */

DROP VIEW IF EXISTS v_inventory_value;
CREATE VIEW v_inventory_value AS
SELECT
  i.category                               AS category,
  COUNT(*)                                 AS item_count,
  COALESCE(SUM(i.quantity), 0.0)           AS total_quantity,
  COALESCE(SUM(i.quantity * i.unit_cost), 0.0) AS total_value
FROM inventory_items i
GROUP BY i.category;

DROP VIEW IF EXISTS v_low_stock;
CREATE VIEW v_low_stock AS
SELECT
  i.item_id, i.code, i.name, i.category, i.unit,
  i.quantity, i.min_stock, i.importance
FROM inventory_items i
WHERE i.quantity <= i.min_stock;
"""


def init_schema(db_path: Path | str = "factory.db") -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT_SEC)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        # Apply (idempotent) schema in one write transaction so triggers are never
        # missing while another connection writes
        conn.executescript(f"BEGIN IMMEDIATE;\n{SQL}\nCOMMIT;")
        conn.commit()
    finally:
        conn.close()
    _log.debug("schema applied to %s", db_path)


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else Path(__file__).resolve().parents[1] / "data" / "factory.db"
    init_schema(target)
