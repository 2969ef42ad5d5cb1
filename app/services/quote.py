"""Quote calculation.

Turns (currency, foreign amount, product type, delivery type) into an
itemized INR price breakdown. All arithmetic is Decimal at full precision;
rounding to paise happens only in `Quote.as_dict()`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import Any, Dict

from app.core.config import Settings
from app.core.errors import NotFound
from app.db.dal import Database
from app.models.constants import HOUSE_BUYS_PRODUCTS
from app.services.money import Number, round2, to_decimal

logger = logging.getLogger("app.quote")


@dataclass(frozen=True)
class PricingPolicy:
    commission_rate: Decimal = Decimal("0.02")
    tax_rate: Decimal = Decimal("0.18")
    doorstep_charge: Decimal = Decimal("50")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingPolicy":
        return cls(
            commission_rate=to_decimal(settings.commission_rate),
            tax_rate=to_decimal(settings.tax_rate),
            doorstep_charge=to_decimal(settings.doorstep_delivery_charge),
        )


@dataclass(frozen=True)
class Quote:
    currency_code: str
    currency_name: str
    product_type: str
    delivery_type: str
    amount_foreign: Decimal
    exchange_rate: Decimal
    base_amount: Decimal
    commission: Decimal
    taxes: Decimal
    delivery_charge: Decimal
    total_amount: Decimal

    def as_dict(self) -> Dict[str, Any]:
        return {
            "currency_code": self.currency_code,
            "currency_name": self.currency_name,
            "product_type": self.product_type,
            "delivery_type": self.delivery_type,
            "amount_foreign": float(self.amount_foreign),
            "exchange_rate": float(self.exchange_rate),
            "base_amount": round2(self.base_amount),
            "commission": round2(self.commission),
            "taxes": round2(self.taxes),
            "delivery_charge": round2(self.delivery_charge),
            "total_amount": round2(self.total_amount),
        }


def select_rate(rate_row: Dict[str, Any], product_type: str) -> Decimal:
    """Pick the side of the rate the house trades on.

    SELL_CURRENCY / CARD_UNLOAD: the house buys from the customer (buy_rate).
    Everything else: the house sells to the customer (sell_rate).
    """
    if product_type in HOUSE_BUYS_PRODUCTS:
        return to_decimal(rate_row["buy_rate"])
    return to_decimal(rate_row["sell_rate"])


def calculate_quote(
    rate_row: Dict[str, Any],
    amount_foreign: Number,
    product_type: str,
    delivery_type: str = "PICKUP",
    policy: PricingPolicy = PricingPolicy(),
) -> Quote:
    amount = to_decimal(amount_foreign)
    if amount <= 0:
        raise ValueError("amount_foreign must be positive")
    exchange_rate = select_rate(rate_row, product_type)
    base_amount = amount * exchange_rate
    commission = base_amount * policy.commission_rate
    taxes = (base_amount + commission) * policy.tax_rate
    delivery_charge = policy.doorstep_charge if delivery_type == "DOORSTEP" else Decimal("0")
    total = base_amount + commission + taxes + delivery_charge
    return Quote(
        currency_code=rate_row["currency_code"],
        currency_name=rate_row["currency_name"],
        product_type=product_type,
        delivery_type=delivery_type,
        amount_foreign=amount,
        exchange_rate=exchange_rate,
        base_amount=base_amount,
        commission=commission,
        taxes=taxes,
        delivery_charge=delivery_charge,
        total_amount=total,
    )


class QuoteCalculator:
    """Prices requests against the live rate table."""

    def __init__(self, db: Database, policy: PricingPolicy):
        self.db = db
        self.policy = policy

    def active_rate(self, currency_code: str) -> Dict[str, Any]:
        row = self.db.get_rate(currency_code)
        if not row or not row["is_active"]:
            raise NotFound(f"No active rate for currency {currency_code.upper()}")
        return row

    def quote(
        self,
        currency_code: str,
        amount_foreign: Number,
        product_type: str,
        delivery_type: str = "PICKUP",
    ) -> Quote:
        rate_row = self.active_rate(currency_code)
        quote = calculate_quote(
            rate_row, amount_foreign, product_type, delivery_type, self.policy
        )
        logger.debug(
            "quote computed",
            extra={"currency": quote.currency_code},
        )
        return quote
