"""Seeding helpers for demo data.

`seed_demo_data` ensures baseline rates, offers, users and addresses exist.
Existing rows are left untouched (INSERT OR IGNORE) so this can be safely
re-run; admin edits to rates are never overwritten.
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sqlite3

from .schema import init_db

# currency_code, currency_name, base_rate, buy_rate, sell_rate, markup
DEMO_RATES = (
    ("USD", "US Dollar", 83.50, 82.00, 85.00, 2.0),
    ("EUR", "Euro", 91.20, 89.50, 92.90, 2.0),
    ("GBP", "British Pound", 106.80, 105.00, 108.60, 2.0),
    ("AED", "UAE Dirham", 22.75, 22.30, 23.20, 2.0),
    ("AUD", "Australian Dollar", 54.60, 53.50, 55.70, 2.0),
    ("CAD", "Canadian Dollar", 61.40, 60.20, 62.60, 2.0),
    ("SGD", "Singapore Dollar", 62.30, 61.10, 63.50, 2.0),
    ("CHF", "Swiss Franc", 95.80, 94.00, 97.60, 2.0),
    ("JPY", "Japanese Yen", 0.56, 0.55, 0.57, 2.0),
    ("CNY", "Chinese Yuan", 11.50, 11.30, 11.70, 2.0),
)

# code, title, description, type, value, min_amount, max_discount, usage_limit
DEMO_OFFERS = (
    ("WELCOME10", "Welcome Offer", "Get 10% off on your first transaction",
     "PERCENTAGE", 10, 1000, 500, 1000),
    ("FLAT200", "Flat 200 Off", "Flat 200 discount on orders above 5000",
     "FLAT", 200, 5000, None, 500),
    ("CASHBACK5", "Cashback Bonanza", "Get 5% cashback in wallet",
     "CASHBACK", 5, 2000, 1000, None),
)

# email, first, last, phone, role, kyc_status, api_token
DEMO_USERS = (
    ("admin@forex.local", "Admin", "User", "+919999999999", "ADMIN", "VERIFIED", "demo-admin-token"),
    ("john.doe@example.com", "John", "Doe", "+919876543210", "USER", "VERIFIED", "demo-john-token"),
    ("jane.smith@example.com", "Jane", "Smith", "+919876543211", "USER", "SUBMITTED", "demo-jane-token"),
)


def seed_demo_data(db_path: Path, offer_validity_days: int = 365) -> None:
    init_db(db_path)  # ensure tables exist
    now = datetime.now(timezone.utc)
    valid_from = (now - timedelta(days=1)).isoformat()
    valid_until = (now + timedelta(days=offer_validity_days)).isoformat()
    with sqlite3.connect(db_path) as conn:
        cur = conn.cursor()
        cur.executemany(
            """
            INSERT OR IGNORE INTO rates
                (currency_code, currency_name, base_rate, buy_rate, sell_rate, markup)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            DEMO_RATES,
        )
        cur.executemany(
            """
            INSERT OR IGNORE INTO offers
                (code, title, description, discount_type, discount_value,
                 min_amount, max_discount, usage_limit, valid_from, valid_until)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [offer + (valid_from, valid_until) for offer in DEMO_OFFERS],
        )
        cur.executemany(
            """
            INSERT OR IGNORE INTO users
                (email, first_name, last_name, phone, role, kyc_status, api_token)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            DEMO_USERS,
        )
        cur.execute(
            """
            INSERT INTO addresses (user_id, line1, line2, city, state, pincode)
            SELECT u.id, '123 Main Street', 'Apartment 4B', 'Mumbai', 'Maharashtra', '400001'
            FROM users u
            WHERE u.email = 'john.doe@example.com'
              AND NOT EXISTS (SELECT 1 FROM addresses a WHERE a.user_id = u.id)
            """
        )
        conn.commit()
