from .assignment import AssignmentStatus, CourierAssignment
from .base import new_id, to_plain, utc_now
from .order import (
    Address,
    AddressType,
    AssignCourierRequest,
    CancelOrderRequest,
    Order,
    OrderCreate,
    OrderStatus,
    Parcel,
    ParcelItem,
    Priority,
    ServiceType,
    StatusUpdateRequest,
    TERMINAL_STATUSES,
    TRACKING_EVENT_FOR_STATUS,
    TrackingEvent,
    TrackingEventType,
)
from .payment import FailPaymentRequest, Payment, PaymentStatus, ProcessPaymentRequest

__all__ = [
    "Address",
    "AddressType",
    "AssignCourierRequest",
    "AssignmentStatus",
    "CancelOrderRequest",
    "CourierAssignment",
    "FailPaymentRequest",
    "Order",
    "OrderCreate",
    "OrderStatus",
    "Parcel",
    "ParcelItem",
    "Payment",
    "PaymentStatus",
    "Priority",
    "ProcessPaymentRequest",
    "ServiceType",
    "StatusUpdateRequest",
    "TERMINAL_STATUSES",
    "TRACKING_EVENT_FOR_STATUS",
    "TrackingEvent",
    "TrackingEventType",
    "new_id",
    "to_plain",
    "utc_now",
]
