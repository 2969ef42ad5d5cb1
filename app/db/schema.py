"""Database schema DDL definitions and initialization utilities.

Tables:
  - users: customers, partners and admins (bearer token identity)
  - addresses: delivery addresses owned by users
  - rates: admin-maintained buy/sell/base rates per currency (INR per unit)
  - orders: immutable pricing snapshot plus lifecycle status
  - offers: discount codes with validity window and usage cap
  - transactions: payment-gateway attempts per order
  - audit_logs: actor/action/entity trail for state changes
  - rate_alerts: per-user target rate notifications
  - metadata: key/value store (schema version)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

USERS_DDL = f"""
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone TEXT,
    role TEXT NOT NULL DEFAULT 'USER' CHECK (role IN ('USER','ADMIN','PARTNER')),
    kyc_status TEXT NOT NULL DEFAULT 'PENDING'
        CHECK (kyc_status IN ('PENDING','SUBMITTED','VERIFIED','REJECTED')),
    api_token TEXT UNIQUE,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

ADDRESSES_DDL = f"""
CREATE TABLE IF NOT EXISTS addresses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    line1 TEXT NOT NULL,
    line2 TEXT,
    city TEXT NOT NULL,
    state TEXT NOT NULL,
    pincode TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

RATES_DDL = f"""
CREATE TABLE IF NOT EXISTS rates (
    currency_code TEXT PRIMARY KEY, -- 'USD','EUR',...
    currency_name TEXT NOT NULL,
    base_rate REAL NOT NULL,
    buy_rate REAL NOT NULL, -- house buys from customer
    sell_rate REAL NOT NULL, -- house sells to customer
    markup REAL NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    last_updated TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

# No FK to rates: the pricing snapshot must outlive rate deletion.
ORDERS_DDL = f"""
CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_number TEXT NOT NULL UNIQUE,
    user_id INTEGER NOT NULL,
    product_type TEXT NOT NULL,
    currency_code TEXT NOT NULL,
    amount_foreign REAL NOT NULL,
    exchange_rate REAL NOT NULL,
    amount_inr REAL NOT NULL,
    commission REAL NOT NULL,
    taxes REAL NOT NULL,
    delivery_charge REAL NOT NULL DEFAULT 0,
    total_amount REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'CREATED',
    payment_status TEXT NOT NULL DEFAULT 'PENDING',
    address_id INTEGER,
    delivery_type TEXT NOT NULL DEFAULT 'PICKUP',
    notes TEXT,
    metadata TEXT NOT NULL DEFAULT '{{}}', -- JSON
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES users(id),
    FOREIGN KEY (address_id) REFERENCES addresses(id)
);
"""

OFFERS_DDL = f"""
CREATE TABLE IF NOT EXISTS offers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    description TEXT,
    discount_type TEXT NOT NULL CHECK (discount_type IN ('PERCENTAGE','FLAT','CASHBACK')),
    discount_value REAL NOT NULL,
    min_amount REAL NOT NULL DEFAULT 0,
    max_discount REAL,
    valid_from TEXT NOT NULL, -- ISO timestamp (UTC)
    valid_until TEXT NOT NULL,
    usage_limit INTEGER,
    usage_count INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

TRANSACTIONS_DDL = f"""
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    amount REAL NOT NULL,
    currency TEXT NOT NULL DEFAULT 'INR',
    payment_gateway TEXT NOT NULL,
    gateway_order_id TEXT NOT NULL UNIQUE,
    gateway_payment_id TEXT,
    status TEXT NOT NULL DEFAULT 'INITIATED'
        CHECK (status IN ('INITIATED','SUCCESS','FAILED')),
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE
);
"""

AUDIT_LOGS_DDL = f"""
CREATE TABLE IF NOT EXISTS audit_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER,
    action TEXT NOT NULL, -- 'ORDER_CREATED','ORDER_CANCELLED',...
    entity TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{{}}', -- JSON
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

RATE_ALERTS_DDL = f"""
CREATE TABLE IF NOT EXISTS rate_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    currency_code TEXT NOT NULL,
    target_rate REAL NOT NULL,
    alert_type TEXT NOT NULL CHECK (alert_type IN ('EMAIL','SMS','BOTH')),
    is_active INTEGER NOT NULL DEFAULT 1,
    triggered_at TEXT,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

ORDERS_USER_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_orders_user_created ON orders(user_id, created_at);"
)
ORDERS_STATUS_INDEX_DDL = "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status);"
TRANSACTIONS_ORDER_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_transactions_order ON transactions(order_id);"
)
AUDIT_ENTITY_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_logs(entity, entity_id);"
)
RATE_ALERTS_ACTIVE_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS idx_rate_alerts_active
ON rate_alerts(currency_code)
WHERE is_active = 1;
"""

DDL_ORDER: Sequence[str] = (
    USERS_DDL,
    ADDRESSES_DDL,
    RATES_DDL,
    ORDERS_DDL,
    OFFERS_DDL,
    TRANSACTIONS_DDL,
    AUDIT_LOGS_DDL,
    RATE_ALERTS_DDL,
    METADATA_DDL,
)

INDEX_DDL: Sequence[str] = (
    ORDERS_USER_INDEX_DDL,
    ORDERS_STATUS_INDEX_DDL,
    TRANSACTIONS_ORDER_INDEX_DDL,
    AUDIT_ENTITY_INDEX_DDL,
    RATE_ALERTS_ACTIVE_INDEX_DDL,
)


def init_db(path: Path) -> None:
    """Create all tables idempotently.

    Parameters
    ----------
    path: Path to SQLite database file.
    """
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        for ddl in INDEX_DDL:
            cur.execute(ddl)
        conn.commit()
    finally:
        conn.close()
