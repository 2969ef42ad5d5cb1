from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.errors import InvalidState, NotFound
from app.services.offers import OfferEngine, compute_discount


def _offer(db, code, **overrides):
    now = datetime.now(timezone.utc)
    data = {
        "code": code,
        "title": code.title(),
        "discount_type": "FLAT",
        "discount_value": 100,
        "min_amount": 0,
        "max_discount": None,
        "valid_from": (now - timedelta(days=1)).isoformat(),
        "valid_until": (now + timedelta(days=1)).isoformat(),
        "usage_limit": None,
    }
    data.update(overrides)
    db.create_offer(data)


def test_flat200_below_minimum(db):
    with pytest.raises(InvalidState):
        OfferEngine(db).validate("FLAT200", 4000)


def test_flat200_applies(db):
    result = OfferEngine(db).validate("FLAT200", 6000)
    assert result.discount == Decimal("200")
    assert result.as_dict()["final_amount"] == 5800.0


def test_welcome10_is_capped(db):
    out = OfferEngine(db).validate("WELCOME10", 10000).as_dict()
    assert out["discount"] == 500.0
    assert out["final_amount"] == 9500.0


def test_welcome10_under_cap(db):
    out = OfferEngine(db).validate("WELCOME10", 3000).as_dict()
    assert out["discount"] == 300.0
    assert out["final_amount"] == 2700.0


def test_cashback_is_wallet_credit_not_discount(db):
    out = OfferEngine(db).validate("CASHBACK5", 10000).as_dict()
    assert out["discount"] == 0.0
    assert out["final_amount"] == 10000.0
    assert out["cashback"] == 500.0
    capped = OfferEngine(db).validate("CASHBACK5", 50000).as_dict()
    assert capped["cashback"] == 1000.0


def test_codes_are_case_insensitive(db):
    assert OfferEngine(db).validate("flat200", 6000).offer["code"] == "FLAT200"


def test_unknown_code(db):
    with pytest.raises(NotFound):
        OfferEngine(db).validate("NOPE", 1000)


def test_expired_offer(db):
    past = datetime.now(timezone.utc) - timedelta(days=10)
    _offer(
        db,
        "OLD50",
        valid_from=(past - timedelta(days=5)).isoformat(),
        valid_until=past.isoformat(),
    )
    with pytest.raises(InvalidState, match="expired"):
        OfferEngine(db).validate("OLD50", 1000)


def test_not_yet_valid_offer(db):
    future = datetime.now(timezone.utc) + timedelta(days=3)
    _offer(db, "SOON", valid_from=future.isoformat(), valid_until=(future + timedelta(days=3)).isoformat())
    with pytest.raises(InvalidState, match="not yet valid"):
        OfferEngine(db).validate("SOON", 1000)


def test_usage_limit_reached(db):
    _offer(db, "ONCE", usage_limit=1, usage_count=1)
    with pytest.raises(InvalidState, match="usage limit"):
        OfferEngine(db).validate("ONCE", 1000)


def test_inactive_reported_before_minimum(db):
    _offer(db, "OFFNOW", is_active=0, min_amount=5000)
    with pytest.raises(InvalidState, match="not active"):
        OfferEngine(db).validate("OFFNOW", 10)


def test_minimum_reported_before_usage_limit(db):
    _offer(db, "TIGHT", min_amount=5000, usage_limit=1, usage_count=1)
    with pytest.raises(InvalidState, match="Minimum amount"):
        OfferEngine(db).validate("TIGHT", 10)


def test_flat_never_exceeds_amount():
    offer = {"discount_type": "FLAT", "discount_value": 200, "max_discount": None}
    result = compute_discount(offer, 150)
    assert result.discount == Decimal("150")
    assert result.final_amount == 0


def test_list_active_hides_expired_and_exhausted(db):
    _offer(db, "GONE", usage_limit=2, usage_count=2)
    past = datetime.now(timezone.utc) - timedelta(days=2)
    _offer(db, "LATE", valid_from=(past - timedelta(days=1)).isoformat(), valid_until=past.isoformat())
    codes = {o["code"] for o in OfferEngine(db).list_active()}
    assert codes == {"WELCOME10", "FLAT200", "CASHBACK5"}


def test_offer_endpoints(client, john_headers):
    listed = client.get("/offers").json()
    assert {o["code"] for o in listed} == {"WELCOME10", "FLAT200", "CASHBACK5"}
    assert client.get("/offers/welcome10").json()["discount_type"] == "PERCENTAGE"
    assert client.get("/offers/NOPE").status_code == 404

    ok = client.post("/offers/validate", json={"code": "flat200", "amount": 6000}, headers=john_headers)
    assert ok.status_code == 200, ok.text
    assert ok.json()["discount"] == 200.0
    assert ok.json()["final_amount"] == 5800.0
    assert ok.json()["offer"]["code"] == "FLAT200"

    low = client.post("/offers/validate", json={"code": "FLAT200", "amount": 4000}, headers=john_headers)
    assert low.status_code == 409
    assert low.json()["error"] == "invalid_state"
    assert "Minimum amount" in low.json()["detail"]
