from .base import Binding, EventConsumer, require
from .notification_consumer import NotificationEventConsumer
from .order_consumer import OrderEventConsumer
from .payment_consumer import PaymentEventConsumer
from .user_consumer import UserEventConsumer

__all__ = [
    "Binding",
    "EventConsumer",
    "NotificationEventConsumer",
    "OrderEventConsumer",
    "PaymentEventConsumer",
    "UserEventConsumer",
    "require",
]
