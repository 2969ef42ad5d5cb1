"""End-to-end smoke run against a throwaway database.

Quotes, places and pays an order, then edits a rate as admin, printing each
response. Usage: python scripts/smoke_orders.py
"""

import json
import os
import sys
import tempfile

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.services.payments import sign

USER = {"Authorization": "Bearer demo-john-token"}
ADMIN = {"Authorization": "Bearer demo-admin-token"}


def run():
    with tempfile.TemporaryDirectory() as d:
        settings = Settings(
            data_dir=d,
            db_path=os.path.join(d, "smoke.sqlite3"),
            payment_key_id="key_smoke",
            payment_key_secret="smoke-secret",
        )
        client = TestClient(create_app(settings_override=settings))

        results = {}
        results["quote"] = client.post(
            "/rates/calculate", json={"currency_code": "USD", "amount_foreign": 100}
        ).json()
        order = client.post(
            "/orders",
            json={"product_type": "BUY_CURRENCY", "currency_code": "USD", "amount_foreign": 100},
            headers=USER,
        ).json()
        results["order"] = order
        pay = client.post(
            "/payments/create-order", json={"order_id": order["id"]}, headers=USER
        ).json()
        results["payment_order"] = pay
        results["verified"] = client.post(
            "/payments/verify",
            json={
                "gateway_order_id": pay["gateway_order_id"],
                "gateway_payment_id": "pay_smoke",
                "signature": sign("smoke-secret", pay["gateway_order_id"], "pay_smoke"),
            },
            headers=USER,
        ).json()
        results["rate_update"] = client.put(
            "/admin/rates/USD", json={"sell_rate": 86.0}, headers=ADMIN
        ).json()
        results["order_after_rate_update"] = client.get(
            f"/orders/{order['id']}", headers=USER
        ).json()
        results["offer"] = client.post(
            "/offers/validate", json={"code": "WELCOME10", "amount": order["total_amount"]}, headers=USER
        ).json()
        print(json.dumps(results, indent=2))


if __name__ == "__main__":
    run()
