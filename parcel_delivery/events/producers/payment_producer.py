"""
Payment-service events: payment.completed, payment.failed
"""

from parcel_delivery.messaging import RoutingKeys
from parcel_delivery.models import Payment
from .base import EventProducer


class PaymentProducer(EventProducer):

    async def publish_payment_completed(self, payment: Payment) -> bool:
        return await self._publish(RoutingKeys.PAYMENT_COMPLETED, {
            "paymentId": payment.payment_id,
            "orderId": payment.order_id,
            "customerId": payment.customer_id,
            "amount": payment.amount,
            "transactionId": payment.gateway_reference,
            "status": payment.status.value,
        })

    async def publish_payment_failed(self, payment: Payment) -> bool:
        return await self._publish(RoutingKeys.PAYMENT_FAILED, {
            "paymentId": payment.payment_id,
            "orderId": payment.order_id,
            "customerId": payment.customer_id,
            "amount": payment.amount,
            "reason": payment.failure_reason,
            "status": payment.status.value,
        })
