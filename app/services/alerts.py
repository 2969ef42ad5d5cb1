"""Rate alert service.

Users register a target sell rate per currency. After every admin rate
mutation `evaluate()` fires each active alert whose target the new sell rate
has reached (target_rate >= sell_rate): a notification goes out on the
alert's channel(s) and the alert is deactivated so it fires only once.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from app.core.errors import Forbidden, NotFound
from app.db.dal import Database
from app.models.rates import RateAlertIn
from app.models.user import User
from app.services.dispatch import SideEffectDispatcher
from app.services.notifications import rate_alert_messages

logger = logging.getLogger("app.alerts")


class RateAlertService:
    def __init__(self, db: Database, dispatcher: SideEffectDispatcher):
        self.db = db
        self.dispatcher = dispatcher

    def create(self, user: User, data: RateAlertIn) -> Dict[str, Any]:
        if not self.db.get_rate(data.currency_code):
            raise NotFound(f"Currency {data.currency_code} not found")
        alert_id = self.db.insert_rate_alert(
            user.id, data.currency_code, data.target_rate, data.alert_type
        )
        return self.db.get_rate_alert(alert_id)  # type: ignore[return-value]

    def list_for(self, user: User) -> List[Dict[str, Any]]:
        return self.db.list_rate_alerts(user.id)

    def delete(self, alert_id: int, user: User) -> None:
        alert = self.db.get_rate_alert(alert_id)
        if not alert:
            raise NotFound(f"Alert {alert_id} not found")
        if alert["user_id"] != user.id:
            raise Forbidden("You do not have access to this alert")
        self.db.delete_rate_alert(alert_id)

    def evaluate(self, currency_codes: Iterable[str]) -> int:
        fired = 0
        for code in currency_codes:
            rate = self.db.get_rate(code)
            if not rate or not rate["is_active"]:
                continue
            for alert in self.db.claim_reached_alerts(code, rate["sell_rate"]):
                for note in rate_alert_messages(alert, rate["sell_rate"]):
                    self.dispatcher.submit(note)
                fired += 1
        if fired:
            logger.info("fired %d rate alerts", fired)
        return fired
