"""
Payment API endpoints (payment-service)

process and fail are the callbacks through which the external payment
gateway's verdict reaches the payment aggregate.
"""

from fastapi import APIRouter, Depends

from parcel_delivery.core.errors import ErrorResponseModel
from parcel_delivery.dependencies import get_payment_service
from parcel_delivery.dependencies.requester import Requester, get_optional_requester
from parcel_delivery.models import FailPaymentRequest, ProcessPaymentRequest
from parcel_delivery.services import PaymentService

router = APIRouter()


@router.get("/order/{order_id}", responses={404: {"model": ErrorResponseModel}})
async def get_payment_by_order(
    order_id: str,
    requester: Requester = Depends(get_optional_requester),
    service: PaymentService = Depends(get_payment_service),
):
    """
    Get the payment for an order

    If order.created has not been consumed yet, the payment is created here
    for the identified customer.
    """
    payment = await service.get_or_create_payment(order_id, requester.user_id if requester else None)
    return payment.to_response()


@router.post("/process", responses={404: {"model": ErrorResponseModel}, 409: {"model": ErrorResponseModel}})
async def process_payment(
    body: ProcessPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Gateway confirmation: capture the payment and publish payment.completed"""
    payment = await service.capture_payment(body.order_id, amount=body.amount, transaction_id=body.transaction_id)
    return payment.to_response()


@router.post("/fail", responses={404: {"model": ErrorResponseModel}, 409: {"model": ErrorResponseModel}})
async def fail_payment(
    body: FailPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Gateway denial: fail the payment and publish payment.failed"""
    payment = await service.fail_payment(body.order_id, reason=body.reason)
    return payment.to_response()
