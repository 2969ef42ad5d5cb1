import re

import pytest

from app.core.errors import Forbidden, InvalidState, NotFound, ServiceUnavailable, ValidationFailed
from app.models.constants import CANCELLABLE_STATUSES, ORDER_STATUSES
from app.models.order import OrderCreate
from app.services.dispatch import AuditEntry, Notification, SideEffectDispatcher
from app.services.orders import OrderLedger, can_transition
from app.services.quote import PricingPolicy, QuoteCalculator

ORDER_NUMBER_RE = re.compile(r"^BMF[0-9A-Z]{5,}$")


def _ledger(db, dispatcher=None, **kwargs) -> OrderLedger:
    return OrderLedger(
        db,
        QuoteCalculator(db, PricingPolicy()),
        dispatcher or SideEffectDispatcher(),
        **kwargs,
    )


def _usd_order(**overrides) -> OrderCreate:
    data = {"product_type": "BUY_CURRENCY", "currency_code": "USD", "amount_foreign": 100}
    data.update(overrides)
    return OrderCreate(**data)


def _create(client, headers, **overrides):
    payload = {"product_type": "BUY_CURRENCY", "currency_code": "USD", "amount_foreign": 100}
    payload.update(overrides)
    return client.post("/orders", json=payload, headers=headers)


def test_create_order_snapshots_quote(client, john_headers):
    resp = _create(client, john_headers, metadata={"purpose": "tourism", "traveller_count": 2})
    assert resp.status_code == 201, resp.text
    order = resp.json()
    assert ORDER_NUMBER_RE.match(order["order_number"])
    assert order["status"] == "CREATED"
    assert order["payment_status"] == "PENDING"
    assert order["exchange_rate"] == 85.0
    assert order["amount_inr"] == 8500.0
    assert order["commission"] == 170.0
    assert order["taxes"] == 1560.6
    assert order["total_amount"] == 10230.6
    assert order["metadata"]["purpose"] == "tourism"
    assert order["metadata"]["traveller_count"] == 2


def test_client_supplied_price_is_ignored(client, john_headers):
    resp = _create(client, john_headers, total_amount=1.0, exchange_rate=1.0)
    assert resp.status_code == 201
    assert resp.json()["total_amount"] == 10230.6


def test_create_requires_token(client):
    resp = _create(client, {})
    assert resp.status_code == 401
    assert resp.json()["error"] == "unauthorized"


def test_create_requires_verified_kyc(client, jane_headers):
    resp = _create(client, jane_headers)
    assert resp.status_code == 403
    assert resp.json()["error"] == "forbidden"


def test_create_unknown_currency(client, john_headers):
    resp = _create(client, john_headers, currency_code="XYZ")
    assert resp.status_code == 404


def test_unknown_metadata_keys_rejected(client, john_headers):
    resp = _create(client, john_headers, metadata={"coupon": "x"})
    assert resp.status_code == 422


def test_doorstep_requires_address(client, john_headers, db, john):
    resp = _create(client, john_headers, delivery_type="DOORSTEP")
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"

    address_id = db.list_addresses(john.id)[0]["id"]
    resp = _create(client, john_headers, delivery_type="DOORSTEP", address_id=address_id)
    assert resp.status_code == 201
    assert resp.json()["delivery_charge"] == 50.0
    assert resp.json()["total_amount"] == 10280.6


def test_address_must_belong_to_user(db, admin, john):
    other = db.create_address(admin.id, "1 Admin Rd", "Pune", "Maharashtra", "411001")
    with pytest.raises(NotFound):
        _ledger(db).create_order(john, _usd_order(address_id=other))


def test_order_pricing_immutable_after_rate_change(client, john_headers, admin_headers):
    order = _create(client, john_headers).json()
    resp = client.put(
        "/admin/rates/USD", json={"sell_rate": 90.0, "buy_rate": 80.0}, headers=admin_headers
    )
    assert resp.status_code == 200, resp.text

    after = client.get(f"/orders/{order['id']}", headers=john_headers).json()
    for field in ("exchange_rate", "amount_inr", "commission", "taxes", "total_amount"):
        assert after[field] == order[field]

    fresh = _create(client, john_headers).json()
    assert fresh["exchange_rate"] == 90.0


def test_rate_deletion_keeps_orders(client, john_headers, admin_headers):
    order = _create(client, john_headers, currency_code="CNY").json()
    assert client.delete("/admin/rates/CNY", headers=admin_headers).status_code == 204
    after = client.get(f"/orders/{order['id']}", headers=john_headers).json()
    assert after["currency_code"] == "CNY"
    assert after["total_amount"] == order["total_amount"]


def test_cancel_order(client, john_headers, db):
    order = _create(client, john_headers).json()
    resp = client.put(f"/orders/{order['id']}/cancel", headers=john_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "CANCELLED"

    again = client.put(f"/orders/{order['id']}/cancel", headers=john_headers)
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_state"

    actions = [a["action"] for a in db.list_audit_logs("Order", order["id"])]
    assert actions == ["ORDER_CREATED", "ORDER_CANCELLED"]


def test_cancel_someone_elses_order(client, admin_headers, john_headers):
    order = _create(client, admin_headers).json()
    resp = client.put(f"/orders/{order['id']}/cancel", headers=john_headers)
    assert resp.status_code == 403
    assert client.get(f"/orders/{order['id']}", headers=john_headers).status_code == 403


def test_cancel_missing_order(client, john_headers):
    resp = client.put("/orders/9999/cancel", headers=john_headers)
    assert resp.status_code == 404


@pytest.mark.parametrize("status", sorted(ORDER_STATUSES))
def test_cancellation_eligibility(db, john, status):
    ledger = _ledger(db)
    order = ledger.create_order(john, _usd_order())
    db.update_order_status(order["id"], status)
    if status in CANCELLABLE_STATUSES:
        assert ledger.cancel_order(order["id"], john)["status"] == "CANCELLED"
    else:
        with pytest.raises(InvalidState):
            ledger.cancel_order(order["id"], john)
        assert db.get_order(order["id"])["status"] == status


def test_cancel_forbidden_leaves_status(db, john, admin):
    ledger = _ledger(db)
    order = ledger.create_order(admin, _usd_order())
    with pytest.raises(Forbidden):
        ledger.cancel_order(order["id"], john)
    assert db.get_order(order["id"])["status"] == "CREATED"


def test_order_number_retry_on_collision(db, john):
    _ledger(db, number_factory=lambda: "BMFDUPLICATE1").create_order(john, _usd_order())
    numbers = iter(["BMFDUPLICATE1", "BMFDUPLICATE1", "BMFFRESH0001"])
    order = _ledger(db, number_factory=lambda: next(numbers)).create_order(john, _usd_order())
    assert order["order_number"] == "BMFFRESH0001"


def test_order_number_retry_exhausted(db, john):
    _ledger(db, number_factory=lambda: "BMFTAKEN").create_order(john, _usd_order())
    ledger = _ledger(db, number_factory=lambda: "BMFTAKEN", max_attempts=3)
    before = db.list_orders(user_id=john.id)[1]
    with pytest.raises(ServiceUnavailable):
        ledger.create_order(john, _usd_order())
    assert db.list_orders(user_id=john.id)[1] == before


def test_side_effect_failures_do_not_fail_order(db, john):
    def boom(_message):
        raise RuntimeError("smtp down")

    dispatcher = SideEffectDispatcher({AuditEntry: boom, Notification: boom})
    order = _ledger(db, dispatcher).create_order(john, _usd_order())
    assert db.get_order(order["id"])["status"] == "CREATED"


def test_order_created_emits_audit_and_notifications(db, john):
    seen = []
    dispatcher = SideEffectDispatcher({AuditEntry: seen.append, Notification: seen.append})
    order = _ledger(db, dispatcher).create_order(john, _usd_order())
    audits = [m for m in seen if isinstance(m, AuditEntry)]
    notes = [m for m in seen if isinstance(m, Notification)]
    assert audits[0].action == "ORDER_CREATED"
    assert audits[0].entity_id == str(order["id"])
    assert {n.channel for n in notes} == {"EMAIL", "SMS"}
    assert all(order["order_number"] in n.subject for n in notes)


def test_order_vanishing_after_insert_is_not_found(db, john, monkeypatch):
    seen = []
    dispatcher = SideEffectDispatcher({AuditEntry: seen.append, Notification: seen.append})
    monkeypatch.setattr(db, "get_order", lambda order_id: None)
    with pytest.raises(NotFound):
        _ledger(db, dispatcher).create_order(john, _usd_order())
    assert seen == []


def test_doorstep_without_address_service_level(db, john):
    with pytest.raises(ValidationFailed):
        _ledger(db).create_order(john, _usd_order(delivery_type="DOORSTEP"))


def test_state_machine_table():
    assert can_transition("CREATED", "PAYMENT_COMPLETED")
    assert can_transition("PAYMENT_COMPLETED", "PROCESSING")
    assert can_transition("PROCESSING", "OUT_FOR_DELIVERY")
    assert can_transition("OUT_FOR_DELIVERY", "COMPLETED")
    assert not can_transition("CREATED", "COMPLETED")
    assert not can_transition("CANCELLED", "CREATED")
    assert not can_transition("COMPLETED", "REFUNDED")


def test_admin_status_updates_follow_state_machine(client, john_headers, admin_headers, db):
    order = _create(client, john_headers).json()
    url = f"/admin/orders/{order['id']}/status"

    bad = client.put(url, json={"status": "COMPLETED"}, headers=admin_headers)
    assert bad.status_code == 409

    for status in ("PAYMENT_COMPLETED", "PROCESSING", "OUT_FOR_DELIVERY", "COMPLETED"):
        resp = client.put(url, json={"status": status}, headers=admin_headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["status"] == status

    cancel = client.put(f"/orders/{order['id']}/cancel", headers=john_headers)
    assert cancel.status_code == 409
    audit = [a for a in db.list_audit_logs("Order", order["id"]) if a["action"] == "ORDER_STATUS_UPDATED"]
    assert [a["metadata"]["to"] for a in audit] == [
        "PAYMENT_COMPLETED",
        "PROCESSING",
        "OUT_FOR_DELIVERY",
        "COMPLETED",
    ]


def test_admin_routes_require_admin(client, john_headers):
    assert client.get("/admin/orders", headers=john_headers).status_code == 403
    assert client.get("/admin/orders").status_code == 401


def test_list_orders_pagination_and_filters(client, john_headers, admin_headers):
    ids = [_create(client, john_headers).json()["id"] for _ in range(3)]
    client.put(f"/orders/{ids[0]}/cancel", headers=john_headers)

    page = client.get("/orders", params={"page": 1, "limit": 2}, headers=john_headers).json()
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert len(page["orders"]) == 2

    cancelled = client.get("/orders", params={"status": "CANCELLED"}, headers=john_headers).json()
    assert [o["id"] for o in cancelled["orders"]] == [ids[0]]

    number = client.get(f"/orders/{ids[1]}", headers=john_headers).json()["order_number"]
    found = client.get(
        "/admin/orders", params={"search": number[-6:].lower()}, headers=admin_headers
    ).json()
    assert ids[1] in [o["id"] for o in found["orders"]]

    admin_view = client.get(f"/admin/orders/{ids[2]}", headers=admin_headers)
    assert admin_view.status_code == 200
