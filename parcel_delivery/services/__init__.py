from .dispatch import AUTO_ASSIGN_NOTE, CompletedHistoryPolicy, CourierSelectionPolicy, DispatchService
from .notification_service import Channel, Notification, NotificationSender, NotificationService
from .order_service import OrderService
from .order_state_machine import TransitionActor, TransitionRequest, allowed_targets, plan_transition, validate_transition
from .payment_service import PaymentService

__all__ = [
    "AUTO_ASSIGN_NOTE",
    "Channel",
    "CompletedHistoryPolicy",
    "CourierSelectionPolicy",
    "DispatchService",
    "Notification",
    "NotificationSender",
    "NotificationService",
    "OrderService",
    "PaymentService",
    "TransitionActor",
    "TransitionRequest",
    "allowed_targets",
    "plan_transition",
    "validate_transition",
]
