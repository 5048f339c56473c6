"""
Order service containing business logic layer

Owns the order aggregate. Every status change goes through the state machine,
is applied with a compare-and-set on the current status, and is followed by
the events the change implies. Publishing happens after the local commit and
never rolls it back.
"""

from typing import Any, Dict, List, Optional

from parcel_delivery.core.errors import ConcurrentModificationError, OrderNotFoundError
from parcel_delivery.core.logger import logger
from parcel_delivery.events.producers import OrderProducer
from parcel_delivery.models import (
    AssignmentStatus,
    CourierAssignment,
    Order,
    OrderCreate,
    OrderStatus,
    Priority,
    StatusUpdateRequest,
    TrackingEvent,
    TrackingEventType,
    to_plain,
)
from parcel_delivery.repositories import AssignmentRepository, OrderRepository
from parcel_delivery.services.order_state_machine import (
    TransitionActor,
    TransitionRequest,
    plan_transition,
    validate_transition,
)

# Assignment outcome when the order reaches a terminal status
ASSIGNMENT_CLOSE_STATUS = {
    OrderStatus.DELIVERED: AssignmentStatus.COMPLETED,
    OrderStatus.FAILED: AssignmentStatus.CANCELLED,
    OrderStatus.CANCELLED: AssignmentStatus.CANCELLED,
    OrderStatus.RETURNED: AssignmentStatus.CANCELLED,
}


class OrderService:
    """Service layer for order business logic"""

    def __init__(
        self,
        orders: OrderRepository,
        assignments: AssignmentRepository,
        producer: OrderProducer,
    ):
        self.orders = orders
        self.assignments = assignments
        self.producer = producer

    async def create_order(self, order_data: OrderCreate, customer_id: str) -> Order:
        """Create a PENDING order and announce it"""
        order = Order(customer_id=customer_id, **order_data.model_dump())
        order.tracking_events.append(
            TrackingEvent(
                event_type=TrackingEventType.ORDER_CREATED,
                new_status=OrderStatus.PENDING,
                notes="Order created",
            )
        )
        await self.orders.create(order)

        logger.info(
            f"Created order {order.order_number}",
            metadata={"event": "create_order", "orderId": order.order_id, "customerId": customer_id},
        )

        await self.producer.publish_order_created(order)
        return order

    async def get_order(self, order_id: str) -> Order:
        """Get order by ID"""
        order = await self.orders.get(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def list_courier_orders(self, courier_id: str, active_only: bool = True) -> List[Order]:
        return await self.orders.list_by_courier(courier_id, active_only=active_only)

    async def list_customer_orders(self, customer_id: str) -> List[Order]:
        orders, _ = await self.orders.list({"customer_id": customer_id})
        return orders

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        priority: Optional[Priority] = None,
        customer_id: Optional[str] = None,
        courier_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Filtered, paginated order listing for the admin view"""
        filters = {
            field: value
            for field, value in (
                ("status", status),
                ("priority", priority),
                ("customer_id", customer_id),
                ("courier_id", courier_id),
            )
            if value is not None
        }
        orders, total_count = await self.orders.list(filters, skip=offset, limit=limit)

        logger.info(
            f"Fetched {len(orders)} orders",
            metadata={"event": "list_orders", "count": len(orders), "total": total_count, "filters": to_plain(filters)},
        )

        return {
            "orders": [order.to_response() for order in orders],
            "pagination": {"total": total_count, "limit": limit, "offset": offset},
        }

    async def transition(self, order_id: str, request: TransitionRequest) -> Order:
        """
        Apply one status change

        Raises:
            OrderNotFoundError: Unknown order
            InvalidTransitionError: Not an edge from the current status
            UnauthorizedTransitionError: Actor may not take the edge
            ConcurrentModificationError: The status changed under us
        """
        order = await self.get_order(order_id)
        changes, tracking_event = plan_transition(order, request)

        updated = await self.orders.apply_transition(order_id, order.status, changes, tracking_event)
        if updated is None:
            raise ConcurrentModificationError("Order", order_id)

        logger.info(
            f"Order {updated.order_number} moved {order.status.value} -> {updated.status.value}",
            metadata={
                "event": "order_transition",
                "orderId": order_id,
                "oldStatus": order.status.value,
                "newStatus": updated.status.value,
                "actor": request.actor.value,
            },
        )

        close_status = ASSIGNMENT_CLOSE_STATUS.get(updated.status)
        if close_status is not None:
            await self.assignments.close_active(order_id, close_status)

        await self.producer.publish_order_status_changed(updated, order.status)
        if updated.status == OrderStatus.DELIVERED:
            await self.producer.publish_order_completed(updated)

        return updated

    async def confirm_payment(self, order_id: str, transaction_id: Optional[str] = None) -> Order:
        note = f"Payment confirmed (transaction {transaction_id})" if transaction_id else "Payment confirmed"
        return await self.transition(
            order_id,
            TransitionRequest(target=OrderStatus.CONFIRMED, actor=TransitionActor.PAYMENT, notes=note),
        )

    async def fail_payment(self, order_id: str, reason: Optional[str] = None) -> Order:
        return await self.transition(
            order_id,
            TransitionRequest(
                target=OrderStatus.FAILED,
                actor=TransitionActor.PAYMENT,
                notes=f"Payment failed: {reason or 'unknown reason'}",
            ),
        )

    async def update_status_by_courier(
        self, order_id: str, courier_id: str, update: StatusUpdateRequest
    ) -> Order:
        return await self.transition(
            order_id,
            TransitionRequest(
                target=update.status,
                actor=TransitionActor.COURIER,
                requester_id=courier_id,
                notes=update.notes,
                latitude=update.latitude,
                longitude=update.longitude,
            ),
        )

    async def cancel_order(
        self, order_id: str, requester_id: str, is_admin: bool = False, reason: Optional[str] = None
    ) -> Order:
        return await self.transition(
            order_id,
            TransitionRequest(
                target=OrderStatus.CANCELLED,
                actor=TransitionActor.ADMIN if is_admin else TransitionActor.CUSTOMER,
                requester_id=requester_id,
                notes=reason or "Cancelled",
            ),
        )

    async def assign_courier(
        self,
        order_id: str,
        courier_id: str,
        vehicle_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Bind a courier to a CONFIRMED order

        Creates the ACTIVE assignment first; if the order transition then
        fails, the assignment is cancelled again and the error propagates.

        Raises:
            AssignmentConflictError: The order already has an ACTIVE assignment
        """
        request = TransitionRequest(
            target=OrderStatus.ASSIGNED_TO_COURIER,
            actor=TransitionActor.DISPATCH,
            courier_id=courier_id,
            vehicle_id=vehicle_id,
            notes=notes,
        )
        validate_transition(await self.get_order(order_id), request)

        await self.assignments.create_active(
            CourierAssignment(order_id=order_id, courier_id=courier_id, vehicle_id=vehicle_id)
        )
        try:
            updated = await self.transition(order_id, request)
        except Exception:
            await self.assignments.close_active(order_id, AssignmentStatus.CANCELLED)
            raise

        await self.producer.publish_order_assigned(updated)
        return updated
