"""
Payment service containing business logic layer

Owns the payment aggregate: one payment per order, created PENDING with
amount 0 when order.created is consumed, then CAPTURED or FAILED on the
external gateway's verdict.
"""

import time
from typing import Optional

from parcel_delivery.core.errors import ConcurrentModificationError, PaymentNotFoundError, PaymentStateError
from parcel_delivery.core.logger import logger
from parcel_delivery.events.producers import PaymentProducer
from parcel_delivery.models import Payment, PaymentStatus, utc_now
from parcel_delivery.repositories import PaymentRepository


def generate_transaction_id() -> str:
    return f"TXN-{int(time.time() * 1000)}"


class PaymentService:
    """Service layer for payment business logic"""

    def __init__(self, payments: PaymentRepository, producer: PaymentProducer):
        self.payments = payments
        self.producer = producer

    async def create_pending_payment(self, order_id: str, customer_id: str) -> Payment:
        """
        Create the PENDING payment for an order, or return the existing one

        Idempotent on orderId: a duplicate order.created never yields a second
        payment.
        """
        payment, created = await self.payments.create_if_absent(
            Payment(order_id=order_id, customer_id=customer_id)
        )
        if created:
            logger.info(
                f"Created payment record {payment.payment_id} for order {order_id}",
                metadata={"event": "create_payment", "orderId": order_id, "paymentId": payment.payment_id},
            )
        else:
            logger.info(
                f"Payment already exists for order {order_id}: {payment.payment_id}",
                metadata={"orderId": order_id, "paymentId": payment.payment_id},
            )
        return payment

    async def get_payment(self, order_id: str) -> Payment:
        payment = await self.payments.get_by_order(order_id)
        if not payment:
            raise PaymentNotFoundError(order_id)
        return payment

    async def get_or_create_payment(self, order_id: str, customer_id: Optional[str] = None) -> Payment:
        """
        Look up the order's payment, creating it if order.created has not
        been consumed yet and the caller identified the customer
        """
        payment = await self.payments.get_by_order(order_id)
        if payment:
            return payment
        if not customer_id:
            raise PaymentNotFoundError(order_id)

        logger.warning(
            f"No payment found for order {order_id}, creating it ahead of order.created",
            metadata={"orderId": order_id, "customerId": customer_id},
        )
        return await self.create_pending_payment(order_id, customer_id)

    async def capture_payment(
        self, order_id: str, amount: Optional[float] = None, transaction_id: Optional[str] = None
    ) -> Payment:
        """
        Record the gateway's confirmation and announce payment.completed

        Raises:
            PaymentNotFoundError: No payment for the order
            PaymentStateError: The payment is already CAPTURED or FAILED
        """
        payment = await self.get_payment(order_id)
        if payment.status != PaymentStatus.PENDING:
            raise PaymentStateError(order_id, payment.status.value)

        changes = {
            "status": PaymentStatus.CAPTURED,
            "gateway_reference": transaction_id or generate_transaction_id(),
            "captured_at": utc_now(),
        }
        if amount is not None:
            changes["amount"] = amount

        updated = await self.payments.update_status(order_id, PaymentStatus.PENDING, changes)
        if updated is None:
            raise ConcurrentModificationError("Payment", payment.payment_id)

        logger.info(
            f"Captured payment {updated.payment_id} for order {order_id}",
            metadata={"event": "capture_payment", "orderId": order_id, "transactionId": updated.gateway_reference},
        )
        await self.producer.publish_payment_completed(updated)
        return updated

    async def fail_payment(self, order_id: str, reason: Optional[str] = None) -> Payment:
        """
        Record the gateway's denial and announce payment.failed

        Raises:
            PaymentNotFoundError: No payment for the order
            PaymentStateError: The payment is already CAPTURED or FAILED
        """
        payment = await self.get_payment(order_id)
        if payment.status != PaymentStatus.PENDING:
            raise PaymentStateError(order_id, payment.status.value)

        updated = await self.payments.update_status(
            order_id,
            PaymentStatus.PENDING,
            {"status": PaymentStatus.FAILED, "failure_reason": reason or "unknown"},
        )
        if updated is None:
            raise ConcurrentModificationError("Payment", payment.payment_id)

        logger.warning(
            f"Payment {updated.payment_id} failed for order {order_id}",
            metadata={"event": "fail_payment", "orderId": order_id, "reason": updated.failure_reason},
        )
        await self.producer.publish_payment_failed(updated)
        return updated
