"""Admin-side rate store operations.

Every write validates buy_rate <= base_rate <= sell_rate against the row as it
will be stored (partial updates are merged first). After a successful write
the broadcaster is woken and rate alerts for the touched currencies are
evaluated.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Sequence

from app.core.errors import InvalidState, NotFound, ValidationFailed
from app.db.dal import Database
from app.models.rates import RateBulkUpdate, RateCreate, RateUpdate
from app.models.user import User
from app.services.alerts import RateAlertService
from app.services.dispatch import AuditEntry, SideEffectDispatcher
from app.services.rates.broadcast import RateBroadcaster

logger = logging.getLogger("app.rates.store")

RATE_ENTITY = "Rate"


def check_rate_order(code: str, base_rate: float, buy_rate: float, sell_rate: float) -> None:
    if not (buy_rate <= base_rate <= sell_rate):
        raise ValidationFailed(
            f"{code}: rates must satisfy buy_rate <= base_rate <= sell_rate "
            f"(got buy={buy_rate}, base={base_rate}, sell={sell_rate})"
        )


class RateStore:
    def __init__(
        self,
        db: Database,
        dispatcher: SideEffectDispatcher,
        broadcaster: Optional[RateBroadcaster] = None,
        alerts: Optional[RateAlertService] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self.alerts = alerts

    def list_rates(self, active_only: bool = True) -> List[Dict[str, Any]]:
        return self.db.list_rates(active_only=active_only)

    def get(self, currency_code: str, active_only: bool = True) -> Dict[str, Any]:
        row = self.db.get_rate(currency_code)
        if not row or (active_only and not row["is_active"]):
            raise NotFound(f"Currency {currency_code.upper()} not found")
        return row

    def _after_write(self, codes: Sequence[str], action: str, actor: User, meta: Dict[str, Any]) -> None:
        for code in codes:
            self.dispatcher.submit(
                AuditEntry(actor.id, action, RATE_ENTITY, code, meta)
            )
        if self.broadcaster is not None:
            self.broadcaster.trigger()
        if self.alerts is not None and action != "RATE_DELETED":
            self.alerts.evaluate(codes)

    def create(self, data: RateCreate, actor: User) -> Dict[str, Any]:
        check_rate_order(data.currency_code, data.base_rate, data.buy_rate, data.sell_rate)
        try:
            self.db.insert_rate(
                data.currency_code,
                data.currency_name,
                data.base_rate,
                data.buy_rate,
                data.sell_rate,
                data.markup,
            )
        except sqlite3.IntegrityError:
            raise InvalidState(f"Rate for {data.currency_code} already exists")
        logger.info("rate created", extra={"currency": data.currency_code})
        self._after_write([data.currency_code], "RATE_CREATED", actor, data.model_dump())
        return self.db.get_rate(data.currency_code)  # type: ignore[return-value]

    def update(self, currency_code: str, data: RateUpdate, actor: User) -> Dict[str, Any]:
        current = self.get(currency_code, active_only=False)
        fields = data.model_dump(exclude_unset=True)
        merged = {**current, **fields}
        check_rate_order(
            current["currency_code"], merged["base_rate"], merged["buy_rate"], merged["sell_rate"]
        )
        self.db.update_rate(current["currency_code"], fields)
        logger.info("rate updated", extra={"currency": current["currency_code"]})
        self._after_write([current["currency_code"]], "RATE_UPDATED", actor, fields)
        return self.db.get_rate(current["currency_code"])  # type: ignore[return-value]

    def delete(self, currency_code: str, actor: User) -> None:
        code = currency_code.upper()
        if not self.db.delete_rate(code):
            raise NotFound(f"Currency {code} not found")
        logger.info("rate deleted", extra={"currency": code})
        self._after_write([code], "RATE_DELETED", actor, {})

    def bulk_update(self, data: RateBulkUpdate, actor: User) -> List[Dict[str, Any]]:
        for item in data.rates:
            check_rate_order(item.currency_code, item.base_rate, item.buy_rate, item.sell_rate)
        missing = self.db.bulk_update_rates(item.model_dump() for item in data.rates)
        if missing:
            raise NotFound(f"Unknown currencies: {', '.join(missing)}")
        codes = [item.currency_code for item in data.rates]
        logger.info("bulk rate update (%d currencies)", len(codes))
        self._after_write(codes, "RATE_BULK_UPDATED", actor, {"count": len(codes)})
        return [self.db.get_rate(code) for code in codes]  # type: ignore[misc]
