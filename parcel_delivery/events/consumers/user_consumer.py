"""
order-service: user and courier updates from user-service
"""

from typing import Any, Dict, List

from parcel_delivery.core.logger import logger
from parcel_delivery.messaging import RoutingKeys
from parcel_delivery.services import OrderService
from .base import Binding, EventConsumer, require


class UserEventConsumer(EventConsumer):

    service_name = "order-service user"

    def __init__(self, broker, processed_events, order_service: OrderService):
        super().__init__(broker, processed_events)
        self.order_service = order_service

    def bindings(self) -> List[Binding]:
        return [
            Binding(RoutingKeys.USER_UPDATED, "order_service_user_queue", self.handle_user_updated),
            Binding(
                RoutingKeys.COURIER_AVAILABILITY_CHANGED,
                "order_service_courier_availability_queue",
                self.handle_courier_availability_changed,
            ),
        ]

    async def handle_user_updated(self, data: Dict[str, Any]) -> None:
        require(data, RoutingKeys.USER_UPDATED, "user_id")
        logger.info(
            f"User {data['user_id']} updated",
            metadata={"userId": data["user_id"], "role": data.get("role")},
        )

    async def handle_courier_availability_changed(self, data: Dict[str, Any]) -> None:
        require(data, RoutingKeys.COURIER_AVAILABILITY_CHANGED, "courierId")
        courier_id = data["courierId"]
        is_available = bool(data.get("isAvailable"))

        logger.info(
            f"Courier {courier_id} availability changed: {'Available' if is_available else 'Unavailable'}",
            metadata={"courierId": courier_id, "status": data.get("status")},
        )
        if is_available:
            return

        active_orders = await self.order_service.list_courier_orders(courier_id)
        if active_orders:
            # Reassignment stays manual
            logger.warning(
                f"Courier {courier_id} went unavailable with {len(active_orders)} active orders",
                metadata={"courierId": courier_id, "orderIds": [o.order_id for o in active_orders]},
            )
