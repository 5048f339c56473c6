"""
Notification service

Renders the customer-facing messages for order and payment lifecycle events.
Delivery is simulated: the sender writes each message to the structured log
and keeps it in memory.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from parcel_delivery.core.logger import logger
from parcel_delivery.models import utc_now


class Channel(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"


@dataclass
class Notification:
    channel: Channel
    customer_id: str
    subject: str
    body: str
    sent_at: datetime = field(default_factory=utc_now)


class NotificationSender:
    """Logs notifications instead of handing them to an email/SMS gateway"""

    def __init__(self):
        self.sent: List[Notification] = []

    def send_email(self, customer_id: str, subject: str, body: str) -> Notification:
        return self._send(Notification(Channel.EMAIL, customer_id, subject, body))

    def send_sms(self, customer_id: str, body: str) -> Notification:
        return self._send(Notification(Channel.SMS, customer_id, "", body))

    def _send(self, notification: Notification) -> Notification:
        self.sent.append(notification)
        logger.info(
            f"[{notification.channel.value}] {notification.subject or notification.body}",
            metadata={
                "event": "notification_sent",
                "channel": notification.channel.value,
                "customerId": notification.customer_id,
                "body": notification.body,
            },
        )
        return notification


class NotificationService:
    """One method per consumed routing key"""

    def __init__(self, sender: NotificationSender):
        self.sender = sender

    async def on_order_created(self, data: Dict[str, Any]) -> None:
        self.sender.send_email(
            data["customerId"],
            "Order Confirmation",
            f"Your order {data.get('orderNumber')} has been created successfully! Order ID: {data['orderId']}",
        )

    async def on_order_status_changed(self, data: Dict[str, Any]) -> None:
        self.sender.send_email(
            data["customerId"],
            "Order Status Update",
            f"Your order {data.get('orderNumber')} status changed from "
            f"{data.get('oldStatus')} to {data.get('newStatus')}",
        )

    async def on_order_assigned(self, data: Dict[str, Any]) -> None:
        self.sender.send_email(
            data["customerId"],
            "Courier Assigned",
            f"A courier has been assigned to your order {data.get('orderNumber')}.",
        )

    async def on_order_completed(self, data: Dict[str, Any]) -> None:
        self.sender.send_email(
            data["customerId"],
            "Order Delivered",
            f"Your order {data.get('orderNumber')} has been delivered successfully!",
        )
        self.sender.send_sms(data["customerId"], f"Your order {data.get('orderNumber')} has been delivered!")

    async def on_payment_completed(self, data: Dict[str, Any]) -> None:
        self.sender.send_email(
            data["customerId"],
            "Payment Receipt",
            f"Payment of {data.get('amount', 0)} ETB received! Transaction ID: {data.get('transactionId')}",
        )
        self.sender.send_sms(
            data["customerId"],
            f"Payment received for Order {data['orderId']}. Your order is being processed!",
        )

    async def on_payment_failed(self, data: Dict[str, Any]) -> None:
        self.sender.send_email(
            data["customerId"],
            "Payment Failed",
            f"Payment for order {data['orderId']} failed. Reason: {data.get('reason') or 'Unknown'}",
        )
