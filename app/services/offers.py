"""Offer engine: discount-code validation.

Checks run in a fixed order (unknown, inactive, outside window, below minimum,
exhausted) so callers always see the first failing rule.

Discount types:
  PERCENTAGE  amount * value / 100, capped at max_discount
  FLAT        value, never more than the amount
  CASHBACK    no order-time discount; the capped percentage is reported as a
              post-payment wallet credit

`OfferCatalog` is the admin side: create, partial update and delete.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional

from app.core.errors import InvalidState, NotFound, ValidationFailed
from app.db.dal import Database
from app.models.offer import OfferCreate, OfferUpdate
from app.models.user import User
from app.services.dispatch import AuditEntry, SideEffectDispatcher
from app.services.money import Number, round2, to_decimal

logger = logging.getLogger("app.offers")

ZERO = Decimal("0")
OFFER_ENTITY = "Offer"


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OfferValidation:
    offer: Dict[str, Any]
    amount: Decimal
    discount: Decimal
    cashback: Decimal

    @property
    def final_amount(self) -> Decimal:
        return self.amount - self.discount

    def as_dict(self) -> Dict[str, Any]:
        return {
            "offer": {
                "code": self.offer["code"],
                "title": self.offer["title"],
                "description": self.offer.get("description"),
                "discount_type": self.offer["discount_type"],
                "discount_value": self.offer["discount_value"],
            },
            "discount": round2(self.discount),
            "final_amount": round2(self.final_amount),
            "cashback": round2(self.cashback),
        }


def _percentage(amount: Decimal, offer: Dict[str, Any]) -> Decimal:
    value = amount * to_decimal(offer["discount_value"]) / Decimal(100)
    if offer.get("max_discount") is not None:
        value = min(value, to_decimal(offer["max_discount"]))
    return value


def compute_discount(offer: Dict[str, Any], amount: Number) -> OfferValidation:
    amt = to_decimal(amount)
    kind = offer["discount_type"]
    discount = ZERO
    cashback = ZERO
    if kind == "PERCENTAGE":
        discount = _percentage(amt, offer)
    elif kind == "FLAT":
        discount = min(to_decimal(offer["discount_value"]), amt)
    elif kind == "CASHBACK":
        cashback = _percentage(amt, offer)
    else:
        raise ValueError(f"Unknown discount type: {kind}")
    return OfferValidation(offer=offer, amount=amt, discount=discount, cashback=cashback)


class OfferEngine:
    def __init__(self, db: Database, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.clock = clock

    def get(self, code: str) -> Dict[str, Any]:
        offer = self.db.get_offer(code.strip())
        if not offer:
            raise NotFound(f"Offer {code.upper()} not found")
        return offer

    def _state_rejection(self, offer: Dict[str, Any], now: datetime) -> Optional[str]:
        if not offer["is_active"]:
            return "Offer is not active"
        if now < _parse_ts(offer["valid_from"]):
            return "Offer is not yet valid"
        if now > _parse_ts(offer["valid_until"]):
            return "Offer has expired"
        return None

    @staticmethod
    def _exhausted(offer: Dict[str, Any]) -> bool:
        limit = offer.get("usage_limit")
        return limit is not None and offer["usage_count"] >= limit

    def list_active(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or self.clock()
        return [
            o
            for o in self.db.list_offers(active_only=True)
            if self._state_rejection(o, now) is None and not self._exhausted(o)
        ]

    def validate(
        self, code: str, amount: Number, now: Optional[datetime] = None
    ) -> OfferValidation:
        now = now or self.clock()
        offer = self.get(code)
        amt = to_decimal(amount)
        reason = self._state_rejection(offer, now)
        if reason is None and amt < to_decimal(offer["min_amount"]):
            reason = f"Minimum amount of {round2(offer['min_amount']):.2f} required"
        if reason is None and self._exhausted(offer):
            reason = "Offer usage limit reached"
        if reason is not None:
            logger.info("offer %s rejected: %s", offer["code"], reason)
            raise InvalidState(reason)
        return compute_discount(offer, amt)


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class OfferCatalog:
    """Admin-side offer maintenance; every write is audited."""

    def __init__(self, db: Database, dispatcher: SideEffectDispatcher):
        self.db = db
        self.dispatcher = dispatcher

    def list_all(self) -> List[Dict[str, Any]]:
        return self.db.list_offers(active_only=False)

    def _get(self, offer_id: int) -> Dict[str, Any]:
        offer = self.db.get_offer_by_id(offer_id)
        if not offer:
            raise NotFound(f"Offer {offer_id} not found")
        return offer

    def _audit(self, actor: User, action: str, offer: Dict[str, Any], meta: Dict[str, Any]) -> None:
        self.dispatcher.submit(
            AuditEntry(
                actor.id, action, OFFER_ENTITY, str(offer["id"]), {"code": offer["code"], **meta}
            )
        )

    def create(self, data: OfferCreate, actor: User) -> Dict[str, Any]:
        values = data.model_dump()
        values["valid_from"] = _iso(data.valid_from)
        values["valid_until"] = _iso(data.valid_until)
        try:
            offer_id = self.db.create_offer(values)
        except sqlite3.IntegrityError:
            raise InvalidState(f"Offer {data.code} already exists")
        offer = self._get(offer_id)
        logger.info("offer %s created", offer["code"])
        self._audit(actor, "OFFER_CREATED", offer, {"discount_type": offer["discount_type"]})
        return offer

    def update(self, offer_id: int, data: OfferUpdate, actor: User) -> Dict[str, Any]:
        current = self._get(offer_id)
        fields = data.model_dump(exclude_unset=True)
        for key in ("valid_from", "valid_until"):
            if key in fields:
                fields[key] = _iso(fields[key])
        merged = {**current, **fields}
        if _parse_ts(merged["valid_until"]) <= _parse_ts(merged["valid_from"]):
            raise ValidationFailed("valid_until must be after valid_from")
        if merged["discount_type"] != "FLAT" and merged["discount_value"] > 100:
            raise ValidationFailed("percentage discounts cannot exceed 100")
        self.db.update_offer(offer_id, fields)
        logger.info("offer %s updated", current["code"])
        self._audit(actor, "OFFER_UPDATED", current, {"fields": sorted(fields)})
        return self._get(offer_id)

    def delete(self, offer_id: int, actor: User) -> None:
        offer = self._get(offer_id)
        self.db.delete_offer(offer_id)
        logger.info("offer %s deleted", offer["code"])
        self._audit(actor, "OFFER_DELETED", offer, {})
