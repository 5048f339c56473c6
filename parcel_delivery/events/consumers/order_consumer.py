"""
payment-service: creates the pending payment for each new order
"""

from typing import Any, Dict, List

from parcel_delivery.messaging import RoutingKeys
from parcel_delivery.services import PaymentService
from .base import Binding, EventConsumer, require


class OrderEventConsumer(EventConsumer):

    service_name = "payment-service order"

    def __init__(self, broker, processed_events, payment_service: PaymentService):
        super().__init__(broker, processed_events)
        self.payment_service = payment_service

    def bindings(self) -> List[Binding]:
        return [
            Binding(RoutingKeys.ORDER_CREATED, "payment_service_order_created", self.handle_order_created),
        ]

    async def handle_order_created(self, data: Dict[str, Any]) -> None:
        require(data, RoutingKeys.ORDER_CREATED, "orderId", "customerId")
        await self.payment_service.create_pending_payment(data["orderId"], data["customerId"])
