from .assignment import AssignmentRepository, InMemoryAssignmentRepository, MongoAssignmentRepository
from .order import InMemoryOrderRepository, MongoOrderRepository, OrderRepository
from .payment import InMemoryPaymentRepository, MongoPaymentRepository, PaymentRepository
from .processed_events import InMemoryProcessedEventRepository, ProcessedEventRepository

__all__ = [
    "AssignmentRepository",
    "InMemoryAssignmentRepository",
    "InMemoryOrderRepository",
    "InMemoryPaymentRepository",
    "InMemoryProcessedEventRepository",
    "MongoAssignmentRepository",
    "MongoOrderRepository",
    "MongoPaymentRepository",
    "OrderRepository",
    "PaymentRepository",
    "ProcessedEventRepository",
]
