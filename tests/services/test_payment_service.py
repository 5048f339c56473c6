"""Unit tests for PaymentService"""
import pytest

from parcel_delivery.core.errors import PaymentNotFoundError, PaymentStateError
from parcel_delivery.models import PaymentStatus
from parcel_delivery.repositories import InMemoryPaymentRepository
from parcel_delivery.services import PaymentService


@pytest.fixture
def payments():
    return InMemoryPaymentRepository()


@pytest.fixture
def service(payments, mock_producer):
    return PaymentService(payments, mock_producer)


@pytest.mark.asyncio
async def test_pending_payment_created_once_per_order(service, payments):
    first = await service.create_pending_payment("O1", "C1")
    second = await service.create_pending_payment("O1", "C1")

    assert first.payment_id == second.payment_id
    assert payments.count() == 1
    assert first.status == PaymentStatus.PENDING
    assert first.amount == 0
    assert first.currency_code == "ETB"


@pytest.mark.asyncio
async def test_capture_payment_publishes_completed(service, mock_producer):
    await service.create_pending_payment("O1", "C1")

    payment = await service.capture_payment("O1", amount=150.0)

    assert payment.status == PaymentStatus.CAPTURED
    assert payment.amount == 150.0
    assert payment.gateway_reference.startswith("TXN-")
    assert payment.captured_at is not None
    mock_producer.publish_payment_completed.assert_awaited_once()


@pytest.mark.asyncio
async def test_capture_keeps_gateway_transaction_id(service):
    await service.create_pending_payment("O1", "C1")
    payment = await service.capture_payment("O1", transaction_id="T1")
    assert payment.gateway_reference == "T1"


@pytest.mark.asyncio
async def test_capture_twice_is_rejected(service, mock_producer):
    await service.create_pending_payment("O1", "C1")
    await service.capture_payment("O1")

    with pytest.raises(PaymentStateError):
        await service.capture_payment("O1")
    assert mock_producer.publish_payment_completed.await_count == 1


@pytest.mark.asyncio
async def test_fail_payment_publishes_failed(service, mock_producer):
    await service.create_pending_payment("O1", "C1")

    payment = await service.fail_payment("O1", "insufficient_funds")

    assert payment.status == PaymentStatus.FAILED
    assert payment.failure_reason == "insufficient_funds"
    mock_producer.publish_payment_failed.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_payment(service):
    with pytest.raises(PaymentNotFoundError):
        await service.capture_payment("missing")


@pytest.mark.asyncio
async def test_get_or_create_needs_customer(service, payments):
    with pytest.raises(PaymentNotFoundError):
        await service.get_or_create_payment("O1")

    payment = await service.get_or_create_payment("O1", customer_id="C1")
    assert payment.customer_id == "C1"
    assert payments.count() == 1
