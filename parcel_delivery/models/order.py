"""
Order aggregate: status is the single source of truth, tracking events are an
append-only audit log of every transition
"""

import random
import time
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from .base import DomainModel, new_id, utc_now


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ASSIGNED_TO_COURIER = "ASSIGNED_TO_COURIER"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.FAILED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
})


class TrackingEventType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    COURIER_ASSIGNED = "COURIER_ASSIGNED"
    PARCEL_PICKED_UP = "PARCEL_PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"


# Tracking event recorded when an order enters a status
TRACKING_EVENT_FOR_STATUS = {
    OrderStatus.PENDING: TrackingEventType.ORDER_CREATED,
    OrderStatus.CONFIRMED: TrackingEventType.ORDER_CONFIRMED,
    OrderStatus.ASSIGNED_TO_COURIER: TrackingEventType.COURIER_ASSIGNED,
    OrderStatus.PICKED_UP: TrackingEventType.PARCEL_PICKED_UP,
    OrderStatus.IN_TRANSIT: TrackingEventType.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY: TrackingEventType.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED: TrackingEventType.DELIVERED,
    OrderStatus.FAILED: TrackingEventType.FAILED,
    OrderStatus.CANCELLED: TrackingEventType.CANCELLED,
    OrderStatus.RETURNED: TrackingEventType.RETURNED,
}


class Priority(str, Enum):
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"
    SAME_DAY = "SAME_DAY"


class ServiceType(str, Enum):
    DOOR_TO_DOOR = "DOOR_TO_DOOR"
    PICKUP_POINT = "PICKUP_POINT"


class AddressType(str, Enum):
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


class Address(DomainModel):
    address_type: AddressType
    contact_name: str
    contact_phone: str
    contact_email: Optional[str] = None
    street_address: str
    subcity: Optional[str] = None
    kebele: Optional[str] = None
    woreda: Optional[str] = None
    house_number: Optional[str] = None
    landmark: Optional[str] = None
    instructions: Optional[str] = None


class ParcelItem(DomainModel):
    sku: Optional[str] = None
    name: str
    description: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    unit_value: Optional[float] = None


class Parcel(DomainModel):
    parcel_number: str = Field(default_factory=lambda: generate_number("PCL"))
    description: Optional[str] = None
    weight_kg: float = Field(..., gt=0)
    length_cm: Optional[float] = None
    width_cm: Optional[float] = None
    height_cm: Optional[float] = None
    declared_value: Optional[float] = None
    category: Optional[str] = None
    is_fragile: bool = False
    is_perishable: bool = False
    requires_signature: bool = False
    insurance_amount: Optional[float] = None
    items: List[ParcelItem] = Field(default_factory=list)


class TrackingEvent(DomainModel):
    event_id: str = Field(default_factory=new_id)
    event_type: TrackingEventType
    old_status: Optional[OrderStatus] = None
    new_status: OrderStatus
    courier_id: Optional[str] = None
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    event_timestamp: datetime = Field(default_factory=utc_now)


class Order(DomainModel):
    order_id: str = Field(default_factory=new_id)
    order_number: str = Field(default_factory=lambda: generate_number("ORD"))
    customer_id: str
    courier_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    priority: Priority = Priority.STANDARD
    service_type: ServiceType = ServiceType.DOOR_TO_DOOR
    notes: Optional[str] = None
    addresses: List[Address] = Field(..., min_length=1)
    parcels: List[Parcel] = Field(..., min_length=1)
    tracking_events: List[TrackingEvent] = Field(default_factory=list)
    scheduled_pickup_time: Optional[datetime] = None
    scheduled_delivery_time: Optional[datetime] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class OrderCreate(DomainModel):
    """Request body for placing an order"""
    priority: Priority = Priority.STANDARD
    service_type: ServiceType = ServiceType.DOOR_TO_DOOR
    notes: Optional[str] = None
    scheduled_pickup_time: Optional[datetime] = None
    scheduled_delivery_time: Optional[datetime] = None
    addresses: List[Address] = Field(..., min_length=1)
    parcels: List[Parcel] = Field(..., min_length=1)


class StatusUpdateRequest(DomainModel):
    status: OrderStatus
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class AssignCourierRequest(DomainModel):
    courier_id: str = Field(..., min_length=1)
    vehicle_id: Optional[str] = None


class CancelOrderRequest(DomainModel):
    reason: Optional[str] = None


def generate_number(prefix: str) -> str:
    """Human-facing reference like ORD-1718000000000-042"""
    return f"{prefix}-{int(time.time() * 1000)}-{random.randint(0, 999):03d}"
