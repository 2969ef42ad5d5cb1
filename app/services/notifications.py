"""Outbound customer notifications (email + SMS).

Both channels degrade to log-only when not configured so local runs and tests
never need an SMTP server or SMS gateway. Delivery is best-effort: callers go
through the side-effect dispatcher, which swallows and logs failures.
"""

from __future__ import annotations

from email.message import EmailMessage
import logging
import smtplib
from typing import Any, Dict, List, Optional

from app.core.config import Settings
from app.services.dispatch import Notification
from app.services.http_client import post_json
from app.services.money import round2

logger = logging.getLogger("app.notifications")


class EmailNotifier:
    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.sender = settings.email_from
        self.timeout = settings.http_timeout_seconds

    def send(self, recipient: str, subject: str, body: str) -> None:
        if not self.host:
            logger.info("email not configured; skipping send to %s: %s", recipient, subject)
            return
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.username:
                smtp.starttls()
                smtp.login(self.username, self.password or "")
            smtp.send_message(msg)
        logger.info("email sent to %s: %s", recipient, subject)


class SmsNotifier:
    def __init__(self, settings: Settings):
        self.url = settings.sms_gateway_url
        self.timeout = settings.http_timeout_seconds

    def send(self, phone: str, body: str) -> None:
        if not self.url:
            logger.info("sms gateway not configured; skipping send to %s", phone)
            return
        # one attempt only; the dispatcher logs failures
        post_json(self.url, {"to": phone, "message": body}, timeout=self.timeout, retries=0)
        logger.info("sms sent to %s", phone)


class NotificationRouter:
    """Dispatcher handler delivering a Notification on its channel."""

    def __init__(self, email: EmailNotifier, sms: SmsNotifier):
        self.email = email
        self.sms = sms

    def __call__(self, note: Notification) -> None:
        if note.channel == "EMAIL":
            self.email.send(note.recipient, note.subject, note.body)
        elif note.channel == "SMS":
            self.sms.send(note.recipient, note.body)
        else:
            raise ValueError(f"Unknown notification channel: {note.channel}")


# ----------------------------------------------------------------------
# Message builders


def _channels(alert_type: str) -> List[str]:
    if alert_type == "BOTH":
        return ["EMAIL", "SMS"]
    return [alert_type]


def order_created_messages(user: Any, order: Dict[str, Any]) -> List[Notification]:
    total = round2(order["total_amount"])
    subject = f"Order {order['order_number']} confirmed"
    body = (
        f"Hi {user.first_name},\n\n"
        f"Your order {order['order_number']} for {order['amount_foreign']} "
        f"{order['currency_code']} ({order['product_type']}) has been created.\n"
        f"Total payable: INR {total:.2f}\n"
    )
    messages = [Notification("EMAIL", user.email, subject, body)]
    if user.phone:
        messages.append(
            Notification(
                "SMS",
                user.phone,
                subject,
                f"Order {order['order_number']} created. Total INR {total:.2f}",
            )
        )
    return messages


def rate_alert_messages(alert: Dict[str, Any], sell_rate: float) -> List[Notification]:
    subject = f"{alert['currency_code']} rate alert"
    body = (
        f"{alert['currency_code']} is now selling at INR {round2(sell_rate):.2f}, "
        f"at or below your target of INR {round2(alert['target_rate']):.2f}."
    )
    messages: List[Notification] = []
    for channel in _channels(alert["alert_type"]):
        recipient: Optional[str] = alert.get("email") if channel == "EMAIL" else alert.get("phone")
        if not recipient:
            logger.info("rate alert %s has no %s recipient", alert["id"], channel.lower())
            continue
        messages.append(Notification(channel, recipient, subject, body))
    return messages
