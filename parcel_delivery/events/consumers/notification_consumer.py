"""
notification-service: one queue per lifecycle event it tells customers about
"""

from typing import Any, Awaitable, Callable, Dict, List

from parcel_delivery.messaging import RoutingKeys
from parcel_delivery.services import NotificationService
from .base import Binding, EventConsumer, require


class NotificationEventConsumer(EventConsumer):

    service_name = "notification-service"

    def __init__(self, broker, processed_events, notification_service: NotificationService):
        super().__init__(broker, processed_events)
        self.notifications = notification_service

    def bindings(self) -> List[Binding]:
        n = self.notifications
        return [
            self._binding(RoutingKeys.ORDER_CREATED, "notification_service_order_created", n.on_order_created),
            self._binding(
                RoutingKeys.ORDER_STATUS_CHANGED,
                "notification_service_order_status_changed",
                n.on_order_status_changed,
            ),
            self._binding(RoutingKeys.ORDER_ASSIGNED, "notification_service_order_assigned", n.on_order_assigned),
            self._binding(RoutingKeys.ORDER_COMPLETED, "notification_service_order_completed", n.on_order_completed),
            self._binding(
                RoutingKeys.PAYMENT_COMPLETED, "notification_service_payment_completed", n.on_payment_completed
            ),
            self._binding(RoutingKeys.PAYMENT_FAILED, "notification_service_payment_failed", n.on_payment_failed),
        ]

    @staticmethod
    def _binding(
        routing_key: str, queue_name: str, notify: Callable[[Dict[str, Any]], Awaitable[None]]
    ) -> Binding:
        async def handler(data: Dict[str, Any]) -> None:
            require(data, routing_key, "orderId", "customerId")
            await notify(data)
        return Binding(routing_key, queue_name, handler)
