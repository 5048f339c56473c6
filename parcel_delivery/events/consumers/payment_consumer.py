"""
order-service: reacts to the payment verdict

payment.completed confirms the order and schedules auto-assignment, also when
a redelivery finds the order already confirmed;
payment.failed fails the order.
"""

from typing import Any, Dict, List

from parcel_delivery.core.errors import InvalidTransitionError
from parcel_delivery.core.logger import logger
from parcel_delivery.messaging import RoutingKeys
from parcel_delivery.models import OrderStatus
from parcel_delivery.services import DispatchService, OrderService
from .base import Binding, EventConsumer, require


class PaymentEventConsumer(EventConsumer):

    service_name = "order-service payment"

    def __init__(self, broker, processed_events, order_service: OrderService, dispatch: DispatchService):
        super().__init__(broker, processed_events)
        self.order_service = order_service
        self.dispatch = dispatch

    def bindings(self) -> List[Binding]:
        return [
            Binding(RoutingKeys.PAYMENT_COMPLETED, "order_service_payment_queue", self.handle_payment_completed),
            Binding(RoutingKeys.PAYMENT_FAILED, "order_service_payment_failed_queue", self.handle_payment_failed),
        ]

    async def handle_payment_completed(self, data: Dict[str, Any]) -> None:
        require(data, RoutingKeys.PAYMENT_COMPLETED, "orderId")
        order_id = data["orderId"]

        try:
            order = await self.order_service.confirm_payment(order_id, data.get("transactionId"))
        except InvalidTransitionError as e:
            if e.current_status != OrderStatus.CONFIRMED.value:
                raise
            # Redelivery after a crash between confirming and scheduling
            logger.info(
                f"Order {order_id} already confirmed, rescheduling auto-assignment",
                metadata={"orderId": order_id},
            )
            self.dispatch.schedule_auto_assignment(order_id)
            return

        logger.info(
            f"Order {order.order_number} confirmed, scheduling auto-assignment",
            metadata={"orderId": order.order_id, "delay": self.dispatch.delay},
        )
        self.dispatch.schedule_auto_assignment(order.order_id)

    async def handle_payment_failed(self, data: Dict[str, Any]) -> None:
        require(data, RoutingKeys.PAYMENT_FAILED, "orderId")

        order = await self.order_service.fail_payment(data["orderId"], data.get("reason"))
        logger.warning(
            f"Order {order.order_number} failed after payment denial",
            metadata={"orderId": order.order_id, "reason": data.get("reason")},
        )
