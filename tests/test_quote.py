from decimal import Decimal
import random

import pytest

from app.core.errors import NotFound
from app.models.constants import HOUSE_BUYS_PRODUCTS, PRODUCT_TYPES
from app.services.money import round2
from app.services.quote import PricingPolicy, QuoteCalculator, calculate_quote, select_rate

USD = {
    "currency_code": "USD",
    "currency_name": "US Dollar",
    "base_rate": 83.50,
    "buy_rate": 82.00,
    "sell_rate": 85.00,
    "is_active": 1,
}


@pytest.mark.parametrize("product_type", sorted(PRODUCT_TYPES))
def test_rate_direction(product_type):
    expected = Decimal("82.0") if product_type in HOUSE_BUYS_PRODUCTS else Decimal("85.0")
    assert select_rate(USD, product_type) == expected
    quote = calculate_quote(USD, 10, product_type)
    assert quote.exchange_rate == expected


def test_sell_and_unload_use_buy_rate():
    assert calculate_quote(USD, 1, "SELL_CURRENCY").exchange_rate == Decimal("82.0")
    assert calculate_quote(USD, 1, "CARD_UNLOAD").exchange_rate == Decimal("82.0")
    assert calculate_quote(USD, 1, "BUY_CURRENCY").exchange_rate == Decimal("85.0")
    assert calculate_quote(USD, 1, "FOREX_CARD").exchange_rate == Decimal("85.0")


def test_usd_scenario_breakdown():
    quote = calculate_quote(USD, 100, "BUY_CURRENCY", "PICKUP")
    assert quote.base_amount == Decimal("8500")
    assert quote.commission == Decimal("170")
    assert quote.taxes == Decimal("1560.6")
    assert quote.delivery_charge == 0
    out = quote.as_dict()
    assert out["total_amount"] == 10230.60
    assert out["taxes"] == 1560.60


def test_doorstep_adds_flat_charge():
    pickup = calculate_quote(USD, 100, "BUY_CURRENCY", "PICKUP")
    doorstep = calculate_quote(USD, 100, "BUY_CURRENCY", "DOORSTEP")
    assert doorstep.delivery_charge == Decimal("50")
    assert doorstep.total_amount - pickup.total_amount == Decimal("50")


def test_total_is_exact_sum_of_components():
    rng = random.Random(20240601)
    for _ in range(200):
        amount = Decimal(str(round(rng.uniform(0.01, 50000), rng.randint(0, 4))))
        if amount <= 0:
            continue
        for delivery in ("PICKUP", "DOORSTEP"):
            q = calculate_quote(USD, amount, rng.choice(sorted(PRODUCT_TYPES)), delivery)
            assert q.total_amount == q.base_amount + q.commission + q.taxes + q.delivery_charge


def test_quote_is_idempotent():
    first = calculate_quote(USD, "123.45", "FOREX_CARD", "DOORSTEP")
    second = calculate_quote(USD, "123.45", "FOREX_CARD", "DOORSTEP")
    assert first == second
    assert first.as_dict() == second.as_dict()


def test_custom_policy():
    policy = PricingPolicy(
        commission_rate=Decimal("0.01"), tax_rate=Decimal("0"), doorstep_charge=Decimal("0")
    )
    q = calculate_quote(USD, 10, "BUY_CURRENCY", "DOORSTEP", policy)
    assert q.total_amount == Decimal("858.5")


def test_non_positive_amount_rejected():
    with pytest.raises(ValueError):
        calculate_quote(USD, 0, "BUY_CURRENCY")


def test_round2_half_up():
    assert round2(Decimal("2.675")) == 2.68
    assert round2(1.005) == 1.01
    assert round2(Decimal("10230.6")) == 10230.60


def test_calculator_reads_rate_store(db, settings):
    calc = QuoteCalculator(db, PricingPolicy.from_settings(settings))
    q = calc.quote("usd", 100, "BUY_CURRENCY")
    assert q.currency_code == "USD"
    assert q.as_dict()["total_amount"] == 10230.60


def test_calculator_unknown_and_inactive_currency(db, settings):
    calc = QuoteCalculator(db, PricingPolicy.from_settings(settings))
    with pytest.raises(NotFound):
        calc.quote("XYZ", 10, "BUY_CURRENCY")
    db.update_rate("EUR", {"is_active": False})
    with pytest.raises(NotFound):
        calc.quote("EUR", 10, "BUY_CURRENCY")


def test_calculate_endpoint(client):
    resp = client.post(
        "/rates/calculate",
        json={"currency_code": "usd", "amount_foreign": 100, "product_type": "BUY_CURRENCY"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["exchange_rate"] == 85.0
    assert body["base_amount"] == 8500.0
    assert body["commission"] == 170.0
    assert body["taxes"] == 1560.6
    assert body["delivery_charge"] == 0.0
    assert body["total_amount"] == 10230.6


def test_calculate_endpoint_unknown_currency(client):
    resp = client.post("/rates/calculate", json={"currency_code": "XYZ", "amount_foreign": 5})
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


def test_calculate_endpoint_rejects_non_positive_amount(client):
    resp = client.post("/rates/calculate", json={"currency_code": "USD", "amount_foreign": 0})
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


@pytest.mark.parametrize("amount", [1e27, "inf", "nan", 10_000_001])
def test_calculate_endpoint_rejects_unpriceable_amount(client, amount):
    resp = client.post("/rates/calculate", json={"currency_code": "USD", "amount_foreign": amount})
    assert resp.status_code == 422
    assert resp.json()["error"] == "validation_error"


def test_calculate_endpoint_accepts_largest_amount(client):
    resp = client.post(
        "/rates/calculate", json={"currency_code": "USD", "amount_foreign": 10_000_000}
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["base_amount"] == 850_000_000.0


@pytest.mark.parametrize("amount", [1e27, "inf"])
def test_order_and_offer_reject_unpriceable_amount(client, john_headers, amount):
    order = client.post(
        "/orders",
        json={"product_type": "BUY_CURRENCY", "currency_code": "USD", "amount_foreign": amount},
        headers=john_headers,
    )
    assert order.status_code == 422
    offer = client.post(
        "/offers/validate", json={"code": "WELCOME10", "amount": amount}, headers=john_headers
    )
    assert offer.status_code == 422


def test_public_rate_listing(client):
    resp = client.get("/rates")
    assert resp.status_code == 200
    codes = [r["currency_code"] for r in resp.json()]
    assert len(codes) == 10
    names = [r["currency_name"] for r in resp.json()]
    assert names == sorted(names)
    usd = client.get("/rates/usd").json()
    assert usd["buy_rate"] == 82.0 and usd["sell_rate"] == 85.0
