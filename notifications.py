"""
notifications.py
================
Best-effort order-confirmation messages over email (SendGrid), SMS and
WhatsApp (Twilio).

Every channel is optional. An unconfigured channel logs what it would
have sent instead. Channel failures are logged and reported as ``False``
in the result; they never propagate to the caller.
"""

import logging
from typing import Callable, Dict, Iterator, Optional

import requests

import config

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


def short_order_id(order) -> str:
    return str(order.id)[-8:]


def _money(value) -> str:
    return f"₹{value:g}"


class NotificationService:

    def __init__(
        self,
        sendgrid_api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        twilio_account_sid: Optional[str] = None,
        twilio_auth_token: Optional[str] = None,
        twilio_phone_number: Optional[str] = None,
        twilio_whatsapp_number: Optional[str] = None,
        timeout: float = config.NOTIFICATION_TIMEOUT_SECONDS,
        http: Optional[requests.Session] = None,
    ):
        self.sendgrid_api_key = sendgrid_api_key
        self.from_email = from_email or config.FROM_EMAIL
        self.twilio_account_sid = twilio_account_sid
        self.twilio_auth_token = twilio_auth_token
        self.twilio_phone_number = twilio_phone_number
        self.twilio_whatsapp_number = twilio_whatsapp_number
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls) -> "NotificationService":
        return cls(
            sendgrid_api_key=config.SENDGRID_API_KEY,
            from_email=config.FROM_EMAIL,
            twilio_account_sid=config.TWILIO_ACCOUNT_SID,
            twilio_auth_token=config.TWILIO_AUTH_TOKEN,
            twilio_phone_number=config.TWILIO_PHONE_NUMBER,
            twilio_whatsapp_number=config.TWILIO_WHATSAPP_NUMBER,
        )

    def close(self) -> None:
        self.http.close()

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    # ─────────────── Channels ───────────────

    def send_email(self, to: str, subject: str, html_content: str) -> bool:
        if not self.sendgrid_api_key:
            logger.info("Email service not configured. Email would be sent to: %s", to)
            logger.info("Subject: %s", subject)
            logger.debug("Content: %s", html_content)
            return True

        response = self.http.post(
            SENDGRID_URL,
            headers={"Authorization": f"Bearer {self.sendgrid_api_key}"},
            json={
                "personalizations": [{"to": [{"email": to}]}],
                "from": {"email": self.from_email},
                "subject": subject,
                "content": [{"type": "text/html", "value": html_content}],
            },
            timeout=self.timeout,
        )
        response.raise_for_status()
        return True

    def _send_twilio(self, sender: str, to: str, body: str) -> bool:
        response = self.http.post(
            TWILIO_MESSAGES_URL.format(sid=self.twilio_account_sid),
            data={"Body": body, "From": sender, "To": to},
            auth=(self.twilio_account_sid, self.twilio_auth_token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return True

    def send_sms(self, to: str, message: str) -> bool:
        if not (self.twilio_configured and self.twilio_phone_number):
            logger.info("SMS service not configured. SMS would be sent to: %s", to)
            logger.info("Message: %s", message)
            return False
        return self._send_twilio(self.twilio_phone_number, to, message)

    def send_whatsapp(self, to: str, message: str) -> bool:
        if not (self.twilio_configured and self.twilio_whatsapp_number):
            logger.info("WhatsApp service not configured. WhatsApp would be sent to: %s", to)
            logger.info("Message: %s", message)
            return False
        return self._send_twilio(f"whatsapp:{self.twilio_whatsapp_number}", f"whatsapp:{to}", message)

    # ─────────────── Message bodies ───────────────

    def order_confirmation_email(self, order, user) -> str:
        rows = "".join(
            "<tr>"
            f"<td>{item['name']}</td>"
            f"<td>{item.get('size', '')}</td>"
            f"<td>{_money(item['price'])}</td>"
            f"<td>{item['quantity']}</td>"
            f"<td>{_money(item['price'] * item['quantity'])}</td>"
            "</tr>"
            for item in order.items
        )
        shipping = order.shipping_info or {}
        order_date = order.created_at.strftime("%d/%m/%Y") if order.created_at else ""
        return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Order Confirmed - Janu Collections</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <h1 style="color: #4f46e5;">Janu Collections</h1>
  <h2 style="color: #059669;">Order Confirmed!</h2>
  <p>Dear {user.name},</p>
  <p>Your order has been confirmed and is being processed. We'll notify you once it's shipped.</p>
  <h3>Order Details</h3>
  <p><strong>Order ID:</strong> {order.id}</p>
  <p><strong>Order Date:</strong> {order_date}</p>
  <table style="width: 100%; border-collapse: collapse;">
    <thead><tr><th>Item</th><th>Size</th><th>Price</th><th>Qty</th><th>Total</th></tr></thead>
    <tbody>{rows}</tbody>
  </table>
  <p><strong>Subtotal:</strong> {_money(order.total_amount - order.shipping_cost)}</p>
  <p><strong>Shipping:</strong> {_money(order.shipping_cost)}</p>
  <p><strong>Total:</strong> {_money(order.total_amount)}</p>
  <h3>Shipping Address</h3>
  <p>{shipping.get('full_name', '')}</p>
  <p>{shipping.get('door_number', '')} {shipping.get('street', '')}, {shipping.get('village', '')}</p>
  <p>{shipping.get('city', '')}, {shipping.get('state', '')} {shipping.get('pincode', '')}</p>
  <p>Phone: {shipping.get('phone', '')}</p>
  <p>Thank you for choosing Janu Collections!</p>
</body>
</html>"""

    def order_confirmation_sms(self, order, user) -> str:
        return (
            f"Hi {user.name}! Your order #{short_order_id(order)} has been confirmed and is being "
            f"processed. Total: {_money(order.total_amount)}. We'll notify you when it ships. "
            "Thank you for choosing Janu Collections!"
        )

    def order_confirmation_whatsapp(self, order, user) -> str:
        order_date = order.created_at.strftime("%d/%m/%Y") if order.created_at else ""
        return (
            f"Hi {user.name}!\n\n"
            "Your order has been *CONFIRMED* and is being processed.\n\n"
            f"Order ID: {short_order_id(order)}\n"
            f"Total Amount: {_money(order.total_amount)}\n"
            f"Order Date: {order_date}\n\n"
            "We'll notify you once your order is shipped and on its way to you.\n\n"
            "Thank you for choosing Janu Collections!"
        )

    # ─────────────── Fan-out ───────────────

    @staticmethod
    def _attempt(channel: str, send: Callable[[], bool]) -> bool:
        try:
            return bool(send())
        except Exception:
            logger.exception("%s notification failed", channel)
            return False

    def send_order_confirmation(self, order, user) -> Dict[str, bool]:
        """Send every channel independently; returns ``{email, sms, whatsapp}``."""
        results = {"email": False, "sms": False, "whatsapp": False}

        subject = f"Order Confirmed - Janu Collections (Order #{short_order_id(order)})"
        results["email"] = self._attempt(
            "email",
            lambda: self.send_email(user.email, subject, self.order_confirmation_email(order, user)),
        )

        phone = (order.shipping_info or {}).get("phone")
        if phone:
            results["sms"] = self._attempt(
                "sms", lambda: self.send_sms(phone, self.order_confirmation_sms(order, user))
            )
            results["whatsapp"] = self._attempt(
                "whatsapp", lambda: self.send_whatsapp(phone, self.order_confirmation_whatsapp(order, user))
            )

        logger.info("Notification results for order %s: %s", order.id, results)
        return results


def get_notification_service() -> Iterator[NotificationService]:
    service = NotificationService.from_config()
    try:
        yield service
    finally:
        service.close()
