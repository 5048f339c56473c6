"""
Order status state machine

PENDING -> CONFIRMED -> ASSIGNED_TO_COURIER -> PICKED_UP -> IN_TRANSIT ->
OUT_FOR_DELIVERY -> DELIVERED, with the side exits FAILED, CANCELLED and
RETURNED. Terminal states accept no further transition.

This module only decides. Persisting the change and publishing the resulting
events is OrderService's job.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from parcel_delivery.core.errors import InvalidTransitionError, UnauthorizedTransitionError
from parcel_delivery.models import (
    Order,
    OrderStatus,
    TERMINAL_STATUSES,
    TRACKING_EVENT_FOR_STATUS,
    TrackingEvent,
    utc_now,
)


class TransitionActor(str, Enum):
    PAYMENT = "PAYMENT"
    DISPATCH = "DISPATCH"
    COURIER = "COURIER"
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class TransitionRule:
    sources: FrozenSet[OrderStatus]
    actors: FrozenSet[TransitionActor]


NON_TERMINAL_STATUSES = frozenset(s for s in OrderStatus if s not in TERMINAL_STATUSES)

TRANSITIONS: Dict[OrderStatus, TransitionRule] = {
    OrderStatus.CONFIRMED: TransitionRule(
        frozenset({OrderStatus.PENDING}),
        frozenset({TransitionActor.PAYMENT}),
    ),
    OrderStatus.ASSIGNED_TO_COURIER: TransitionRule(
        frozenset({OrderStatus.CONFIRMED}),
        frozenset({TransitionActor.DISPATCH}),
    ),
    OrderStatus.PICKED_UP: TransitionRule(
        frozenset({OrderStatus.ASSIGNED_TO_COURIER}),
        frozenset({TransitionActor.COURIER}),
    ),
    OrderStatus.IN_TRANSIT: TransitionRule(
        frozenset({OrderStatus.PICKED_UP}),
        frozenset({TransitionActor.COURIER}),
    ),
    OrderStatus.OUT_FOR_DELIVERY: TransitionRule(
        frozenset({OrderStatus.IN_TRANSIT}),
        frozenset({TransitionActor.COURIER}),
    ),
    OrderStatus.DELIVERED: TransitionRule(
        frozenset({OrderStatus.OUT_FOR_DELIVERY}),
        frozenset({TransitionActor.COURIER}),
    ),
    OrderStatus.FAILED: TransitionRule(
        NON_TERMINAL_STATUSES,
        frozenset({TransitionActor.PAYMENT, TransitionActor.COURIER}),
    ),
    OrderStatus.CANCELLED: TransitionRule(
        frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.ASSIGNED_TO_COURIER}),
        frozenset({TransitionActor.CUSTOMER, TransitionActor.ADMIN}),
    ),
    OrderStatus.RETURNED: TransitionRule(
        frozenset({OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.OUT_FOR_DELIVERY}),
        frozenset({TransitionActor.COURIER}),
    ),
}


@dataclass
class TransitionRequest:
    """A status change as asked for by one actor"""
    target: OrderStatus
    actor: TransitionActor
    requester_id: Optional[str] = None
    courier_id: Optional[str] = None
    vehicle_id: Optional[str] = None
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


def allowed_targets(status: OrderStatus) -> FrozenSet[OrderStatus]:
    """Statuses reachable from status by some actor"""
    return frozenset(target for target, rule in TRANSITIONS.items() if status in rule.sources)


def validate_transition(order: Order, request: TransitionRequest) -> None:
    """
    Check a transition request against the current order

    Raises:
        InvalidTransitionError: The edge does not exist or a required field is missing
        UnauthorizedTransitionError: The actor may not take this edge on this order
    """
    current = order.status
    target = request.target

    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            order.order_id, current.value, target.value, reason=f"{current.value} is a terminal status"
        )

    rule = TRANSITIONS.get(target)
    if rule is None or current not in rule.sources:
        raise InvalidTransitionError(order.order_id, current.value, target.value)

    if request.actor not in rule.actors:
        raise UnauthorizedTransitionError(order.order_id, target.value, request.requester_id)

    if request.actor == TransitionActor.COURIER:
        if not order.courier_id or request.requester_id != order.courier_id:
            raise UnauthorizedTransitionError(order.order_id, target.value, request.requester_id)

    if request.actor == TransitionActor.CUSTOMER and request.requester_id != order.customer_id:
        raise UnauthorizedTransitionError(order.order_id, target.value, request.requester_id)

    if target == OrderStatus.ASSIGNED_TO_COURIER and not request.courier_id:
        raise InvalidTransitionError(
            order.order_id, current.value, target.value, reason="courierId is required"
        )


def acting_courier(order: Order, request: TransitionRequest) -> Optional[str]:
    if request.target == OrderStatus.ASSIGNED_TO_COURIER:
        return request.courier_id
    if request.actor == TransitionActor.COURIER:
        return request.requester_id
    return None


def plan_transition(order: Order, request: TransitionRequest) -> Tuple[Dict[str, Any], TrackingEvent]:
    """
    Validate the request and compute the field changes plus its tracking event

    Returns:
        (changes to set on the order, tracking event to append)
    """
    validate_transition(order, request)

    changes: Dict[str, Any] = {"status": request.target}
    if request.target == OrderStatus.ASSIGNED_TO_COURIER:
        changes["courier_id"] = request.courier_id
        changes["vehicle_id"] = request.vehicle_id
    if request.target == OrderStatus.DELIVERED and order.actual_delivery_time is None:
        changes["actual_delivery_time"] = utc_now()

    event = TrackingEvent(
        event_type=TRACKING_EVENT_FOR_STATUS[request.target],
        old_status=order.status,
        new_status=request.target,
        courier_id=acting_courier(order, request),
        notes=request.notes,
        latitude=request.latitude,
        longitude=request.longitude,
    )
    return changes, event
