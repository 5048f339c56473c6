from .base import EventProducer
from .order_producer import OrderProducer
from .payment_producer import PaymentProducer
from .user_producer import UserProducer

__all__ = ["EventProducer", "OrderProducer", "PaymentProducer", "UserProducer"]
