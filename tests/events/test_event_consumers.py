"""Unit tests for the shared consumer rules and the per-service handlers"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from factories import make_order
from parcel_delivery.core.errors import OrderNotFoundError
from parcel_delivery.events.consumers import (
    NotificationEventConsumer,
    OrderEventConsumer,
    PaymentEventConsumer,
    UserEventConsumer,
)
from parcel_delivery.messaging import EventEnvelope, RoutingKeys
from parcel_delivery.models import OrderStatus
from parcel_delivery.repositories import (
    InMemoryAssignmentRepository,
    InMemoryOrderRepository,
    InMemoryPaymentRepository,
    InMemoryProcessedEventRepository,
)
from parcel_delivery.services import NotificationSender, NotificationService, OrderService, PaymentService


def envelope(routing_key, payload, event_id="E1"):
    return EventEnvelope(event_id=event_id, routing_key=routing_key, payload=payload)


def binding_for(consumer, routing_key):
    return next(b for b in consumer.bindings() if b.routing_key == routing_key)


@pytest.fixture
def processed():
    return InMemoryProcessedEventRepository()


@pytest.fixture
def orders():
    return InMemoryOrderRepository()


@pytest.fixture
def order_service(orders, mock_producer):
    return OrderService(orders, InMemoryAssignmentRepository(), mock_producer)


@pytest.fixture
def dispatch():
    dispatch = MagicMock()
    dispatch.delay = 0
    return dispatch


@pytest.fixture
def payment_consumer(processed, order_service, dispatch):
    return PaymentEventConsumer(MagicMock(), processed, order_service, dispatch)


class TestPaymentEventConsumer:

    @pytest.mark.asyncio
    async def test_payment_completed_confirms_and_schedules_dispatch(self, payment_consumer, orders, dispatch, processed):
        await orders.create(make_order())
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_COMPLETED)

        await payment_consumer.handle(binding, envelope(RoutingKeys.PAYMENT_COMPLETED, {"orderId": "O1", "transactionId": "T1"}))

        assert (await orders.get("O1")).status == OrderStatus.CONFIRMED
        dispatch.schedule_auto_assignment.assert_called_once_with("O1")
        assert await processed.is_processed("E1", "order_service_payment_queue")

    @pytest.mark.asyncio
    async def test_redelivered_event_is_skipped(self, payment_consumer, orders, dispatch, mock_producer):
        await orders.create(make_order())
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_COMPLETED)
        event = envelope(RoutingKeys.PAYMENT_COMPLETED, {"orderId": "O1"})

        await payment_consumer.handle(binding, event)
        await payment_consumer.handle(binding, event)

        assert dispatch.schedule_auto_assignment.call_count == 1
        assert mock_producer.publish_order_status_changed.await_count == 1

    @pytest.mark.asyncio
    async def test_redelivery_to_confirmed_order_reschedules_dispatch(self, payment_consumer, orders, dispatch, processed, mock_producer):
        await orders.create(make_order(status=OrderStatus.CONFIRMED))
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_COMPLETED)

        await payment_consumer.handle(binding, envelope(RoutingKeys.PAYMENT_COMPLETED, {"orderId": "O1"}, "E2"))

        dispatch.schedule_auto_assignment.assert_called_once_with("O1")
        mock_producer.publish_order_status_changed.assert_not_awaited()
        assert await processed.is_processed("E2", "order_service_payment_queue")

    @pytest.mark.asyncio
    async def test_payment_on_cancelled_order_is_dropped(self, payment_consumer, orders, dispatch):
        await orders.create(make_order(status=OrderStatus.CANCELLED))
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_COMPLETED)

        await payment_consumer.handle(binding, envelope(RoutingKeys.PAYMENT_COMPLETED, {"orderId": "O1"}))

        assert (await orders.get("O1")).status == OrderStatus.CANCELLED
        dispatch.schedule_auto_assignment.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_order_id_is_dropped_unmarked(self, payment_consumer, processed):
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_COMPLETED)

        await payment_consumer.handle(binding, envelope(RoutingKeys.PAYMENT_COMPLETED, {"amount": 10}))

        assert not await processed.is_processed("E1", "order_service_payment_queue")

    @pytest.mark.asyncio
    async def test_unknown_order_propagates_for_retry(self, payment_consumer, processed):
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_COMPLETED)

        with pytest.raises(OrderNotFoundError):
            await payment_consumer.handle(binding, envelope(RoutingKeys.PAYMENT_COMPLETED, {"orderId": "nope"}))

        assert not await processed.is_processed("E1", "order_service_payment_queue")

    @pytest.mark.asyncio
    async def test_payment_failed_fails_order(self, payment_consumer, orders, dispatch):
        await orders.create(make_order())
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_FAILED)

        await payment_consumer.handle(
            binding, envelope(RoutingKeys.PAYMENT_FAILED, {"orderId": "O1", "reason": "card_declined"})
        )

        order = await orders.get("O1")
        assert order.status == OrderStatus.FAILED
        assert "card_declined" in order.tracking_events[-1].notes
        dispatch.schedule_auto_assignment.assert_not_called()

    @pytest.mark.asyncio
    async def test_same_event_id_is_tracked_per_queue(self, payment_consumer, processed, orders):
        await orders.create(make_order())
        await processed.mark_processed("E1", "notification_service_payment_completed", RoutingKeys.PAYMENT_COMPLETED)
        binding = binding_for(payment_consumer, RoutingKeys.PAYMENT_COMPLETED)

        await payment_consumer.handle(binding, envelope(RoutingKeys.PAYMENT_COMPLETED, {"orderId": "O1"}))

        assert (await orders.get("O1")).status == OrderStatus.CONFIRMED


class TestOrderEventConsumer:

    @pytest.mark.asyncio
    async def test_order_created_opens_pending_payment(self, processed, mock_producer):
        payments = InMemoryPaymentRepository()
        consumer = OrderEventConsumer(MagicMock(), processed, PaymentService(payments, mock_producer))
        binding = binding_for(consumer, RoutingKeys.ORDER_CREATED)

        await consumer.handle(binding, envelope(RoutingKeys.ORDER_CREATED, {"orderId": "O1", "customerId": "C1"}, "E1"))
        await consumer.handle(binding, envelope(RoutingKeys.ORDER_CREATED, {"orderId": "O1", "customerId": "C1"}, "E2"))

        assert payments.count() == 1
        assert (await payments.get_by_order("O1")).customer_id == "C1"

    @pytest.mark.asyncio
    async def test_order_created_without_customer_is_dropped(self, processed, mock_producer):
        payments = InMemoryPaymentRepository()
        consumer = OrderEventConsumer(MagicMock(), processed, PaymentService(payments, mock_producer))
        binding = binding_for(consumer, RoutingKeys.ORDER_CREATED)

        await consumer.handle(binding, envelope(RoutingKeys.ORDER_CREATED, {"orderId": "O1"}))

        assert payments.count() == 0


class TestUserEventConsumer:

    @pytest.mark.asyncio
    async def test_unavailable_courier_with_active_orders_is_reported(self, processed):
        order_service = MagicMock()
        order_service.list_courier_orders = AsyncMock(return_value=[make_order(courier_id="K1")])
        consumer = UserEventConsumer(MagicMock(), processed, order_service)
        binding = binding_for(consumer, RoutingKeys.COURIER_AVAILABILITY_CHANGED)

        await consumer.handle(
            binding,
            envelope(RoutingKeys.COURIER_AVAILABILITY_CHANGED, {"courierId": "K1", "isAvailable": False}),
        )

        order_service.list_courier_orders.assert_awaited_once_with("K1")

    @pytest.mark.asyncio
    async def test_available_courier_needs_no_lookup(self, processed):
        order_service = MagicMock()
        order_service.list_courier_orders = AsyncMock()
        consumer = UserEventConsumer(MagicMock(), processed, order_service)
        binding = binding_for(consumer, RoutingKeys.COURIER_AVAILABILITY_CHANGED)

        await consumer.handle(
            binding,
            envelope(RoutingKeys.COURIER_AVAILABILITY_CHANGED, {"courierId": "K1", "isAvailable": True}),
        )

        order_service.list_courier_orders.assert_not_awaited()


class TestNotificationEventConsumer:

    def test_one_queue_per_routing_key(self, processed):
        consumer = NotificationEventConsumer(MagicMock(), processed, NotificationService(NotificationSender()))
        queues = [b.queue_name for b in consumer.bindings()]

        assert len(queues) == 6
        assert len(set(queues)) == 6
        assert "notification_service_order_completed" in queues

    @pytest.mark.asyncio
    async def test_event_without_customer_is_dropped(self, processed):
        sender = NotificationSender()
        consumer = NotificationEventConsumer(MagicMock(), processed, NotificationService(sender))
        binding = binding_for(consumer, RoutingKeys.ORDER_ASSIGNED)

        await consumer.handle(binding, envelope(RoutingKeys.ORDER_ASSIGNED, {"orderId": "O1"}))

        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_start_subscribes_every_binding(self, processed):
        broker = MagicMock()
        broker.subscribe = AsyncMock()
        consumer = NotificationEventConsumer(broker, processed, NotificationService(NotificationSender()))

        await consumer.start()

        assert broker.subscribe.await_count == 6
        routing_key, queue_name, handler = broker.subscribe.await_args_list[0].args
        assert routing_key == RoutingKeys.ORDER_CREATED
        assert queue_name == "notification_service_order_created"
        assert callable(handler)
