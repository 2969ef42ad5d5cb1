"""Order ledger.

Creates orders from a freshly computed quote and freezes the pricing onto the
row; afterwards pricing fields are never recomputed. Status changes follow
`ORDER_TRANSITIONS` and are applied with conditional updates so a concurrent
change surfaces as InvalidState instead of silently overwriting.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.core.errors import Forbidden, InvalidState, NotFound, ServiceUnavailable, ValidationFailed
from app.db.dal import Database
from app.models.constants import CANCELLABLE_STATUSES, ORDER_TRANSITIONS
from app.models.order import OrderCreate, Pagination
from app.models.user import User
from app.services.dispatch import AuditEntry, SideEffectDispatcher
from app.services.money import round2
from app.services.notifications import order_created_messages
from app.services.order_number import generate_order_number
from app.services.quote import QuoteCalculator

logger = logging.getLogger("app.orders")

ORDER_ENTITY = "Order"


def can_transition(current: str, new: str) -> bool:
    return new in ORDER_TRANSITIONS.get(current, frozenset())


class OrderLedger:
    def __init__(
        self,
        db: Database,
        calculator: QuoteCalculator,
        dispatcher: SideEffectDispatcher,
        order_number_prefix: str = "BMF",
        max_attempts: int = 5,
        number_factory: Optional[Callable[[], str]] = None,
    ):
        self.db = db
        self.calculator = calculator
        self.dispatcher = dispatcher
        self.max_attempts = max_attempts
        self._next_number = number_factory or (lambda: generate_order_number(order_number_prefix))

    # ------------------------------------------------------------------
    # Creation
    def _check_address(self, user: User, data: OrderCreate) -> None:
        if data.address_id is None:
            if data.delivery_type == "DOORSTEP":
                raise ValidationFailed("Doorstep delivery requires an address")
            return
        address = self.db.get_address(data.address_id)
        if not address or address["user_id"] != user.id:
            raise NotFound("Address not found")

    def _insert_with_unique_number(self, values: Dict[str, Any]) -> int:
        for attempt in range(1, self.max_attempts + 1):
            number = self._next_number()
            try:
                return self.db.insert_order({**values, "order_number": number})
            except sqlite3.IntegrityError as e:
                if "order_number" not in str(e):
                    raise
                logger.warning(
                    "order number collision (attempt %d/%d)",
                    attempt,
                    self.max_attempts,
                    extra={"order_number": number},
                )
        raise ServiceUnavailable("Could not allocate a unique order number; please retry")

    def create_order(self, user: User, data: OrderCreate) -> Dict[str, Any]:
        self._check_address(user, data)
        # Client never supplies a price; always re-quote against the rate table
        quote = self.calculator.quote(
            data.currency_code, data.amount_foreign, data.product_type, data.delivery_type
        )
        values = {
            "user_id": user.id,
            "product_type": data.product_type,
            "currency_code": quote.currency_code,
            "amount_foreign": float(quote.amount_foreign),
            "exchange_rate": float(quote.exchange_rate),
            "amount_inr": round2(quote.base_amount),
            "commission": round2(quote.commission),
            "taxes": round2(quote.taxes),
            "delivery_charge": round2(quote.delivery_charge),
            "total_amount": round2(quote.total_amount),
            "status": "CREATED",
            "payment_status": "PENDING",
            "address_id": data.address_id,
            "delivery_type": data.delivery_type,
            "notes": data.notes,
            "metadata": data.metadata.model_dump(mode="json", exclude_none=True),
        }
        order_id = self._insert_with_unique_number(values)
        order = self.db.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        logger.info(
            "order created",
            extra={"order_number": order["order_number"], "currency": order["currency_code"]},
        )
        self.dispatcher.submit(
            AuditEntry(
                actor_id=user.id,
                action="ORDER_CREATED",
                entity=ORDER_ENTITY,
                entity_id=str(order_id),
                metadata={
                    "order_number": order["order_number"],
                    "total_amount": order["total_amount"],
                },
            )
        )
        for note in order_created_messages(user, order):
            self.dispatcher.submit(note)
        return order

    # ------------------------------------------------------------------
    # Reads
    def get_order(self, order_id: int, user: User) -> Dict[str, Any]:
        order = self.db.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        if order["user_id"] != user.id and not user.is_admin:
            raise Forbidden("You do not have access to this order")
        return order

    def list_orders(
        self,
        user: User,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        rows, total = self.db.list_orders(
            user_id=user.id, status=status, offset=(page - 1) * limit, limit=limit
        )
        return rows, Pagination.build(page, limit, total)

    def list_all(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        rows, total = self.db.list_orders(
            status=status, search=search, offset=(page - 1) * limit, limit=limit
        )
        return rows, Pagination.build(page, limit, total)

    # ------------------------------------------------------------------
    # Status changes
    def cancel_order(self, order_id: int, user: User) -> Dict[str, Any]:
        order = self.db.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        if order["user_id"] != user.id:
            raise Forbidden("You do not have access to this order")
        if order["status"] not in CANCELLABLE_STATUSES:
            raise InvalidState(f"Order cannot be cancelled in status {order['status']}")
        if not self.db.update_order_status(order_id, "CANCELLED", CANCELLABLE_STATUSES):
            raise InvalidState("Order status changed; cancellation not applied")
        self.dispatcher.submit(
            AuditEntry(
                actor_id=user.id,
                action="ORDER_CANCELLED",
                entity=ORDER_ENTITY,
                entity_id=str(order_id),
                metadata={"previous_status": order["status"]},
            )
        )
        return self.db.get_order(order_id)  # type: ignore[return-value]

    def update_status(self, order_id: int, new_status: str, actor: User) -> Dict[str, Any]:
        order = self.db.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        current = order["status"]
        if not can_transition(current, new_status):
            raise InvalidState(f"Cannot move order from {current} to {new_status}")
        if not self.db.update_order_status(order_id, new_status, [current]):
            raise InvalidState("Order status changed; update not applied")
        self.dispatcher.submit(
            AuditEntry(
                actor_id=actor.id,
                action="ORDER_STATUS_UPDATED",
                entity=ORDER_ENTITY,
                entity_id=str(order_id),
                metadata={"from": current, "to": new_status},
            )
        )
        return self.db.get_order(order_id)  # type: ignore[return-value]
