"""Payment ledger.

Gateway contract
----------------
`PaymentGateway.create_order(amount_paise, receipt, notes)` returns a dict with
`id`, `amount` and `currency`. The bundled `LocalGateway` mints ids locally;
a hosted gateway plugs in behind the same protocol.

Signature contract: hex HMAC-SHA256 over ``"{gateway_order_id}|{gateway_payment_id}"``
keyed with the gateway key secret.

At most one transaction per order reaches SUCCESS; the success write and the
order transition to PAYMENT_COMPLETED happen in one database transaction.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
import hashlib
import hmac
import logging
import secrets
from typing import Any, Dict, List, Optional, Protocol, Tuple

from app.core.errors import (
    Forbidden,
    InvalidState,
    NotFound,
    ServiceUnavailable,
    ValidationFailed,
)
from app.db.dal import Database
from app.models.constants import PAYABLE_STATUSES
from app.models.order import Pagination
from app.models.user import User
from app.services.dispatch import AuditEntry, SideEffectDispatcher
from app.services.money import to_decimal
from app.services.orders import can_transition

logger = logging.getLogger("app.payments")

PAID_STATUS = "PAYMENT_COMPLETED"


class PaymentGateway(Protocol):
    name: str

    def create_order(
        self, amount_paise: int, receipt: str, notes: Dict[str, Any]
    ) -> Dict[str, Any]: ...


class LocalGateway:
    name = "local"

    def create_order(
        self, amount_paise: int, receipt: str, notes: Dict[str, Any]
    ) -> Dict[str, Any]:
        return {
            "id": f"order_{secrets.token_hex(8)}",
            "amount": amount_paise,
            "currency": "INR",
            "receipt": receipt,
        }


def sign(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def to_paise(amount: Any) -> int:
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:
    def __init__(
        self,
        db: Database,
        dispatcher: SideEffectDispatcher,
        gateway: PaymentGateway,
        key_id: Optional[str],
        key_secret: Optional[str],
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.gateway = gateway
        self.key_id = key_id
        self.key_secret = key_secret

    def _secret(self) -> str:
        if not self.key_secret:
            raise ServiceUnavailable("Payment gateway is not configured")
        return self.key_secret

    def create_payment_order(self, order_id: int, user: User) -> Dict[str, Any]:
        self._secret()
        order = self.db.get_order(order_id)
        if not order:
            raise NotFound(f"Order {order_id} not found")
        if order["user_id"] != user.id:
            raise Forbidden("You do not have access to this order")
        if order["payment_status"] == "SUCCESS" or self.db.has_successful_transaction(order_id):
            raise InvalidState("Order is already paid")
        if not can_transition(order["status"], PAID_STATUS):
            raise InvalidState(f"Order in status {order['status']} cannot be paid")

        amount_paise = to_paise(order["total_amount"])
        gateway_order = self.gateway.create_order(
            amount_paise,
            receipt=order["order_number"],
            notes={"order_id": order_id, "user_id": user.id},
        )
        txn_id = self.db.insert_transaction(
            order_id=order_id,
            user_id=user.id,
            amount=order["total_amount"],
            payment_gateway=self.gateway.name,
            gateway_order_id=gateway_order["id"],
            currency=gateway_order.get("currency", "INR"),
        )
        logger.info(
            "payment order created", extra={"order_number": order["order_number"]}
        )
        return {
            "gateway_order_id": gateway_order["id"],
            "key_id": self.key_id,
            "amount": amount_paise,
            "currency": gateway_order.get("currency", "INR"),
            "transaction_id": txn_id,
        }

    def verify_payment(
        self,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
        user: User,
    ) -> Dict[str, Any]:
        expected = sign(self._secret(), gateway_order_id, gateway_payment_id)
        if not hmac.compare_digest(expected, signature):
            raise ValidationFailed("Invalid payment signature")
        txn = self.db.get_transaction_by_gateway_order(gateway_order_id, user.id)
        if not txn:
            raise NotFound("Transaction not found")
        order = self.db.get_order(txn["order_id"])
        if not order:
            raise NotFound("Order not found")
        if not can_transition(order["status"], PAID_STATUS):
            raise InvalidState(f"Order in status {order['status']} cannot be paid")
        if not self.db.complete_payment(
            txn["id"], gateway_payment_id, order["id"], PAYABLE_STATUSES
        ):
            raise InvalidState("Order is already paid or no longer payable")
        self.dispatcher.submit(
            AuditEntry(
                actor_id=user.id,
                action="PAYMENT_SUCCESS",
                entity="Transaction",
                entity_id=str(txn["id"]),
                metadata={
                    "order_id": order["id"],
                    "gateway_payment_id": gateway_payment_id,
                },
            )
        )
        logger.info("payment verified", extra={"order_number": order["order_number"]})
        return self.db.get_order(order["id"])  # type: ignore[return-value]

    def list_transactions(
        self, user: User, page: int = 1, limit: int = 10
    ) -> Tuple[List[Dict[str, Any]], Pagination]:
        rows, total = self.db.list_transactions(user.id, offset=(page - 1) * limit, limit=limit)
        return rows, Pagination.build(page, limit, total)
