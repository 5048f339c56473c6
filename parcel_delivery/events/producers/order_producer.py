"""
Order-service events: order.created, order.status.changed, order.assigned, order.completed
"""

from typing import Optional

from parcel_delivery.messaging import RoutingKeys
from parcel_delivery.models import Order, OrderStatus
from .base import EventProducer


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class OrderProducer(EventProducer):

    async def publish_order_created(self, order: Order) -> bool:
        return await self._publish(RoutingKeys.ORDER_CREATED, {
            "orderId": order.order_id,
            "orderNumber": order.order_number,
            "customerId": order.customer_id,
            "status": order.status.value,
            "priority": order.priority.value,
            "estimatedDeliveryTime": _iso(order.estimated_delivery_time),
            "createdAt": _iso(order.created_at),
        })

    async def publish_order_status_changed(self, order: Order, old_status: OrderStatus) -> bool:
        return await self._publish(RoutingKeys.ORDER_STATUS_CHANGED, {
            "orderId": order.order_id,
            "orderNumber": order.order_number,
            "customerId": order.customer_id,
            "oldStatus": old_status.value,
            "newStatus": order.status.value,
            "courierId": order.courier_id,
        })

    async def publish_order_assigned(self, order: Order) -> bool:
        return await self._publish(RoutingKeys.ORDER_ASSIGNED, {
            "orderId": order.order_id,
            "orderNumber": order.order_number,
            "customerId": order.customer_id,
            "courierId": order.courier_id,
            "vehicleId": order.vehicle_id,
        })

    async def publish_order_completed(self, order: Order) -> bool:
        return await self._publish(RoutingKeys.ORDER_COMPLETED, {
            "orderId": order.order_id,
            "orderNumber": order.order_number,
            "customerId": order.customer_id,
            "courierId": order.courier_id,
            "actualDeliveryTime": _iso(order.actual_delivery_time),
        })
