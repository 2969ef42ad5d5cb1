"""Data Access Layer for the forex marketplace.

Responsibilities
----------------
- Own SQLite connection handling (one short-lived connection per call).
- Provide CRUD helpers for rates, orders, offers, transactions, audit logs,
  rate alerts, users and addresses.
- Keep multi-statement writes (bulk rate update, payment completion) inside a
  single transaction.

Rows are returned as plain dicts; pricing/validation rules live in services.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import json
import sqlite3
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

UTC_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

RATE_FIELDS = ("currency_name", "base_rate", "buy_rate", "sell_rate", "markup", "is_active")
OFFER_FIELDS = (
    "code",
    "title",
    "description",
    "discount_type",
    "discount_value",
    "min_amount",
    "max_discount",
    "valid_from",
    "valid_until",
    "usage_limit",
    "usage_count",
    "is_active",
)
ORDER_INSERT_FIELDS = (
    "order_number",
    "user_id",
    "product_type",
    "currency_code",
    "amount_foreign",
    "exchange_rate",
    "amount_inr",
    "commission",
    "taxes",
    "delivery_charge",
    "total_amount",
    "status",
    "payment_status",
    "address_id",
    "delivery_type",
    "notes",
    "metadata",
)


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(sql, params).fetchone()
            return dict(row) if row else None

    def _fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Users & addresses (identity collaborator)
    def get_user_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM users WHERE api_token = ?", (token,))

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))

    def update_user_kyc(self, user_id: int, kyc_status: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE users SET kyc_status = ? WHERE id = ?", (kyc_status, user_id)
            )
            return cur.rowcount > 0

    def get_address(self, address_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM addresses WHERE id = ?", (address_id,))

    def list_addresses(self, user_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM addresses WHERE user_id = ? ORDER BY id", (user_id,)
        )

    def create_address(
        self,
        user_id: int,
        line1: str,
        city: str,
        state: str,
        pincode: str,
        line2: Optional[str] = None,
    ) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO addresses (user_id, line1, line2, city, state, pincode)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, line1, line2, city, state, pincode),
            )
            return int(cur.lastrowid)

    # ------------------------------------------------------------------
    # Rates
    def list_rates(self, active_only: bool = True) -> List[Dict[str, Any]]:
        query = "SELECT * FROM rates"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY currency_name ASC"
        return self._fetch_all(query)

    def get_rate(self, currency_code: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM rates WHERE currency_code = ?", (currency_code.upper(),)
        )

    def rate_snapshot(self) -> List[Dict[str, Any]]:
        """Active rates in broadcast shape (single query)."""
        return self._fetch_all(
            """
            SELECT currency_code, currency_name, buy_rate, sell_rate, last_updated
            FROM rates
            WHERE is_active = 1
            ORDER BY currency_name ASC
            """
        )

    def insert_rate(
        self,
        currency_code: str,
        currency_name: str,
        base_rate: float,
        buy_rate: float,
        sell_rate: float,
        markup: float = 0.0,
    ) -> None:
        """Insert a rate row; raises sqlite3.IntegrityError if the code exists."""
        with self._connect() as conn:
            conn.execute(
                f"""
                INSERT INTO rates
                    (currency_code, currency_name, base_rate, buy_rate, sell_rate, markup, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, ({UTC_NOW_SQL}))
                """,
                (currency_code.upper(), currency_name, base_rate, buy_rate, sell_rate, markup),
            )

    def update_rate(self, currency_code: str, fields: Dict[str, Any]) -> bool:
        unknown = set(fields) - set(RATE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported rate fields: {sorted(unknown)}")
        assignments = [f"{k} = ?" for k in fields]
        params: List[Any] = [
            int(v) if isinstance(v, bool) else v for v in fields.values()
        ]
        assignments.append(f"last_updated = ({UTC_NOW_SQL})")
        params.append(currency_code.upper())
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE rates SET {', '.join(assignments)} WHERE currency_code = ?",
                params,
            )
            return cur.rowcount > 0

    def delete_rate(self, currency_code: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM rates WHERE currency_code = ?", (currency_code.upper(),)
            )
            return cur.rowcount > 0

    def bulk_update_rates(self, items: Iterable[Dict[str, Any]]) -> List[str]:
        """Apply base/buy/sell updates atomically.

        Returns the list of currency codes that do not exist; when non-empty no
        row is modified.
        """
        items = list(items)
        with self._connect() as conn:
            missing: List[str] = []
            for item in items:
                cur = conn.execute(
                    f"""
                    UPDATE rates
                    SET base_rate = ?, buy_rate = ?, sell_rate = ?,
                        last_updated = ({UTC_NOW_SQL})
                    WHERE currency_code = ?
                    """,
                    (
                        item["base_rate"],
                        item["buy_rate"],
                        item["sell_rate"],
                        item["currency_code"].upper(),
                    ),
                )
                if cur.rowcount == 0:
                    missing.append(item["currency_code"].upper())
            if missing:
                conn.rollback()
            return missing

    # ------------------------------------------------------------------
    # Orders
    def insert_order(self, order: Dict[str, Any]) -> int:
        """Insert an order row.

        Raises sqlite3.IntegrityError on order_number collision so callers can
        retry with a fresh number.
        """
        values = dict(order)
        values["metadata"] = json.dumps(values.get("metadata") or {}, default=str)
        cols = ", ".join(ORDER_INSERT_FIELDS)
        marks = ", ".join("?" for _ in ORDER_INSERT_FIELDS)
        with self._connect() as conn:
            cur = conn.execute(
                f"INSERT INTO orders ({cols}) VALUES ({marks})",
                [values.get(k) for k in ORDER_INSERT_FIELDS],
            )
            return int(cur.lastrowid)

    def get_order(self, order_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM orders WHERE id = ?", (order_id,))

    def list_orders(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Dict[str, Any]], int]:
        clauses: List[str] = []
        params: List[Any] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if search:
            clauses.append("UPPER(order_number) LIKE ?")
            params.append(f"%{search.upper()}%")
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        with self._connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM orders{where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM orders{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                [*params, limit, offset],
            ).fetchall()
            return [dict(r) for r in rows], int(total or 0)

    def update_order_status(
        self,
        order_id: int,
        new_status: str,
        expected_statuses: Optional[Iterable[str]] = None,
    ) -> bool:
        """Set order status, optionally only when the current status is expected.

        Returns False when no row matched (missing order or status changed
        concurrently).
        """
        sql = f"UPDATE orders SET status = ?, updated_at = ({UTC_NOW_SQL}) WHERE id = ?"
        params: List[Any] = [new_status, order_id]
        if expected_statuses is not None:
            expected = list(expected_statuses)
            sql += f" AND status IN ({', '.join('?' for _ in expected)})"
            params.extend(expected)
        with self._connect() as conn:
            return conn.execute(sql, params).rowcount > 0

    # ------------------------------------------------------------------
    # Offers
    def get_offer(self, code: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM offers WHERE code = ?", (code.upper(),))

    def list_offers(self, active_only: bool = True) -> List[Dict[str, Any]]:
        query = "SELECT * FROM offers"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY created_at DESC, id DESC"
        return self._fetch_all(query)

    def get_offer_by_id(self, offer_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM offers WHERE id = ?", (offer_id,))

    def create_offer(self, offer: Dict[str, Any]) -> int:
        """Insert an offer; raises sqlite3.IntegrityError if the code exists."""
        values = dict(offer)
        values["code"] = values["code"].upper()
        values.setdefault("usage_count", 0)
        values["is_active"] = int(values.get("is_active", True))
        with self._connect() as conn:
            cur = conn.execute(
                f"INSERT INTO offers ({', '.join(OFFER_FIELDS)}) "
                f"VALUES ({', '.join('?' for _ in OFFER_FIELDS)})",
                [values.get(c) for c in OFFER_FIELDS],
            )
            return int(cur.lastrowid)

    def update_offer(self, offer_id: int, fields: Dict[str, Any]) -> bool:
        unknown = set(fields) - set(OFFER_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported offer fields: {sorted(unknown)}")
        assignments = [f"{k} = ?" for k in fields]
        params: List[Any] = [int(v) if isinstance(v, bool) else v for v in fields.values()]
        params.append(offer_id)
        with self._connect() as conn:
            cur = conn.execute(
                f"UPDATE offers SET {', '.join(assignments)} WHERE id = ?", params
            )
            return cur.rowcount > 0

    def delete_offer(self, offer_id: int) -> bool:
        with self._connect() as conn:
            return conn.execute("DELETE FROM offers WHERE id = ?", (offer_id,)).rowcount > 0

    # ------------------------------------------------------------------
    # Transactions
    def insert_transaction(
        self,
        order_id: int,
        user_id: int,
        amount: float,
        payment_gateway: str,
        gateway_order_id: str,
        currency: str = "INR",
    ) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO transactions
                    (order_id, user_id, amount, currency, payment_gateway, gateway_order_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (order_id, user_id, amount, currency, payment_gateway, gateway_order_id),
            )
            conn.execute(
                f"UPDATE orders SET payment_status = 'INITIATED', updated_at = ({UTC_NOW_SQL}) WHERE id = ?",
                (order_id,),
            )
            return int(cur.lastrowid)

    def get_transaction_by_gateway_order(
        self, gateway_order_id: str, user_id: int
    ) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM transactions WHERE gateway_order_id = ? AND user_id = ?",
            (gateway_order_id, user_id),
        )

    def has_successful_transaction(self, order_id: int) -> bool:
        row = self._fetch_one(
            "SELECT 1 AS ok FROM transactions WHERE order_id = ? AND status = 'SUCCESS' LIMIT 1",
            (order_id,),
        )
        return row is not None

    def complete_payment(
        self,
        transaction_id: int,
        gateway_payment_id: str,
        order_id: int,
        payable_statuses: Iterable[str],
    ) -> bool:
        """Mark a transaction SUCCESS and its order paid in one transaction.

        Returns False (and changes nothing) if the order already has a
        successful transaction or its status is no longer one of
        `payable_statuses`.
        """
        payable = list(payable_statuses)
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT 1 FROM transactions WHERE order_id = ? AND status = 'SUCCESS'",
                (order_id,),
            ).fetchone()
            if existing:
                return False
            cur = conn.execute(
                f"""
                UPDATE orders
                SET payment_status = 'SUCCESS', status = 'PAYMENT_COMPLETED',
                    updated_at = ({UTC_NOW_SQL})
                WHERE id = ? AND status IN ({', '.join('?' for _ in payable)})
                """,
                (order_id, *payable),
            )
            if cur.rowcount == 0:
                return False
            conn.execute(
                f"""
                UPDATE transactions
                SET status = 'SUCCESS', gateway_payment_id = ?, updated_at = ({UTC_NOW_SQL})
                WHERE id = ?
                """,
                (gateway_payment_id, transaction_id),
            )
            return True

    def list_transactions(
        self, user_id: int, offset: int = 0, limit: int = 10
    ) -> Tuple[List[Dict[str, Any]], int]:
        with self._connect() as conn:
            total = conn.execute(
                "SELECT COUNT(*) FROM transactions WHERE user_id = ?", (user_id,)
            ).fetchone()[0]
            rows = conn.execute(
                """
                SELECT t.*, o.order_number
                FROM transactions t
                JOIN orders o ON o.id = t.order_id
                WHERE t.user_id = ?
                ORDER BY t.created_at DESC, t.id DESC
                LIMIT ? OFFSET ?
                """,
                (user_id, limit, offset),
            ).fetchall()
            return [dict(r) for r in rows], int(total or 0)

    # ------------------------------------------------------------------
    # Audit
    def insert_audit_log(
        self,
        user_id: Optional[int],
        action: str,
        entity: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO audit_logs (user_id, action, entity, entity_id, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, action, entity, str(entity_id), json.dumps(metadata or {}, default=str)),
            )
            return int(cur.lastrowid)

    def list_audit_logs(
        self, entity: Optional[str] = None, entity_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        clauses: List[str] = []
        params: List[Any] = []
        if entity:
            clauses.append("entity = ?")
            params.append(entity)
        if entity_id is not None:
            clauses.append("entity_id = ?")
            params.append(str(entity_id))
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        rows = self._fetch_all(f"SELECT * FROM audit_logs{where} ORDER BY id ASC", params)
        for r in rows:
            r["metadata"] = json.loads(r["metadata"] or "{}")
        return rows

    def page_audit_logs(
        self,
        action: Optional[str] = None,
        user_id: Optional[int] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Newest-first audit trail for the admin console."""
        clauses: List[str] = []
        params: List[Any] = []
        if action:
            clauses.append("action = ?")
            params.append(action)
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        with self._connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM audit_logs{where}", params).fetchone()[0]
            rows = [
                dict(r)
                for r in conn.execute(
                    f"SELECT * FROM audit_logs{where} ORDER BY id DESC LIMIT ? OFFSET ?",
                    [*params, limit, offset],
                ).fetchall()
            ]
        for r in rows:
            r["metadata"] = json.loads(r["metadata"] or "{}")
        return rows, int(total or 0)

    # ------------------------------------------------------------------
    # Dashboard
    def dashboard_stats(self, pending_statuses: Iterable[str]) -> Dict[str, Any]:
        pending = list(pending_statuses)
        with self._connect() as conn:

            def scalar(sql: str, params: Sequence[Any] = ()) -> Any:
                return conn.execute(sql, params).fetchone()[0]

            return {
                "total_users": scalar("SELECT COUNT(*) FROM users"),
                "total_orders": scalar("SELECT COUNT(*) FROM orders"),
                "pending_orders": scalar(
                    f"SELECT COUNT(*) FROM orders WHERE status IN ({', '.join('?' for _ in pending)})",
                    pending,
                ),
                "completed_orders": scalar(
                    "SELECT COUNT(*) FROM orders WHERE status = 'COMPLETED'"
                ),
                "total_revenue": scalar(
                    "SELECT COALESCE(SUM(total_amount), 0) FROM orders WHERE payment_status = 'SUCCESS'"
                ),
                "pending_kyc": scalar(
                    "SELECT COUNT(*) FROM users WHERE kyc_status = 'SUBMITTED'"
                ),
            }

    # ------------------------------------------------------------------
    # Rate alerts
    def insert_rate_alert(
        self, user_id: int, currency_code: str, target_rate: float, alert_type: str
    ) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO rate_alerts (user_id, currency_code, target_rate, alert_type)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, currency_code.upper(), target_rate, alert_type),
            )
            return int(cur.lastrowid)

    def get_rate_alert(self, alert_id: int) -> Optional[Dict[str, Any]]:
        return self._fetch_one("SELECT * FROM rate_alerts WHERE id = ?", (alert_id,))

    def list_rate_alerts(self, user_id: int) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM rate_alerts WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,),
        )

    def delete_rate_alert(self, alert_id: int) -> bool:
        with self._connect() as conn:
            return conn.execute("DELETE FROM rate_alerts WHERE id = ?", (alert_id,)).rowcount > 0

    def claim_reached_alerts(self, currency_code: str, sell_rate: float) -> List[Dict[str, Any]]:
        """Deactivate and return active alerts whose target the sell rate has reached."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT a.*, u.email, u.phone, u.first_name
                FROM rate_alerts a
                JOIN users u ON u.id = a.user_id
                WHERE a.currency_code = ? AND a.is_active = 1 AND a.target_rate >= ?
                ORDER BY a.id
                """,
                (currency_code.upper(), sell_rate),
            ).fetchall()
            ids = [r["id"] for r in rows]
            if ids:
                conn.execute(
                    f"""
                    UPDATE rate_alerts
                    SET is_active = 0, triggered_at = ({UTC_NOW_SQL})
                    WHERE id IN ({', '.join('?' for _ in ids)})
                    """,
                    ids,
                )
            return [dict(r) for r in rows]
