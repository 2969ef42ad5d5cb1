"""Customer directory: profile reads, delivery addresses and KYC review.

KYC status is what opens the order gate (`require_kyc_verified`); only admins
change it, and every change is audited together with the review notes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from app.core.errors import NotFound
from app.db.dal import Database
from app.models.user import AddressIn, User
from app.services.dispatch import AuditEntry, SideEffectDispatcher

logger = logging.getLogger("app.users")

RECENT_ORDER_LIMIT = 10


class UserDirectory:
    def __init__(self, db: Database, dispatcher: SideEffectDispatcher):
        self.db = db
        self.dispatcher = dispatcher

    def get(self, user_id: int) -> User:
        row = self.db.get_user(user_id)
        if not row:
            raise NotFound(f"User {user_id} not found")
        return User.from_row(row)

    def detail(self, user_id: int) -> Dict[str, Any]:
        user = self.get(user_id)
        orders, _ = self.db.list_orders(user_id=user_id, limit=RECENT_ORDER_LIMIT)
        return {
            "user": user,
            "addresses": self.db.list_addresses(user_id),
            "recent_orders": orders,
        }

    def addresses(self, user: User) -> List[Dict[str, Any]]:
        return self.db.list_addresses(user.id)

    def add_address(self, user: User, data: AddressIn) -> Dict[str, Any]:
        address_id = self.db.create_address(
            user.id, data.line1, data.city, data.state, data.pincode, line2=data.line2
        )
        return self.db.get_address(address_id)  # type: ignore[return-value]

    def update_kyc(
        self, user_id: int, kyc_status: str, actor: User, notes: Optional[str] = None
    ) -> User:
        previous = self.get(user_id)
        if not self.db.update_user_kyc(user_id, kyc_status):
            raise NotFound(f"User {user_id} not found")
        logger.info("kyc status for user %d: %s -> %s", user_id, previous.kyc_status, kyc_status)
        self.dispatcher.submit(
            AuditEntry(
                actor_id=actor.id,
                action="KYC_STATUS_UPDATED",
                entity="User",
                entity_id=str(user_id),
                metadata={"from": previous.kyc_status, "to": kyc_status, "notes": notes},
            )
        )
        return self.get(user_id)
