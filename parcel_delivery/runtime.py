"""
Service runtime

One ServiceRuntime per process. It owns the broker connection shared by the
process's producers and consumers, picks the stores, and starts the consumers
of the service role(s) it runs exactly once at startup.

Roles: order-service, payment-service, notification-service, or "all" to run
every consumer in one process (local development with the in-memory broker).
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set

from parcel_delivery.core.config import Config, config as default_config
from parcel_delivery.core.logger import logger
from parcel_delivery.db import mongodb
from parcel_delivery.events.consumers import (
    EventConsumer,
    NotificationEventConsumer,
    OrderEventConsumer,
    PaymentEventConsumer,
    UserEventConsumer,
)
from parcel_delivery.events.producers import OrderProducer, PaymentProducer, UserProducer
from parcel_delivery.messaging import IMessageBroker, MessageBrokerFactory
from parcel_delivery.repositories import (
    AssignmentRepository,
    InMemoryAssignmentRepository,
    InMemoryOrderRepository,
    InMemoryPaymentRepository,
    InMemoryProcessedEventRepository,
    MongoAssignmentRepository,
    MongoOrderRepository,
    MongoPaymentRepository,
    OrderRepository,
    PaymentRepository,
    ProcessedEventRepository,
)
from parcel_delivery.services import (
    CompletedHistoryPolicy,
    CourierSelectionPolicy,
    DispatchService,
    NotificationSender,
    NotificationService,
    OrderService,
    PaymentService,
)

ORDER_SERVICE = "order-service"
PAYMENT_SERVICE = "payment-service"
NOTIFICATION_SERVICE = "notification-service"
ALL_SERVICES = frozenset({ORDER_SERVICE, PAYMENT_SERVICE, NOTIFICATION_SERVICE})


def resolve_roles(service_name: str) -> Set[str]:
    if service_name == "all":
        return set(ALL_SERVICES)
    if service_name not in ALL_SERVICES:
        raise ValueError(
            f"Unknown service role: {service_name}. "
            f"Supported roles: {', '.join(sorted(ALL_SERVICES))}, all"
        )
    return {service_name}


@dataclass
class Stores:
    orders: OrderRepository
    payments: PaymentRepository
    assignments: AssignmentRepository
    processed_events: Any


def memory_stores() -> Stores:
    return Stores(
        orders=InMemoryOrderRepository(),
        payments=InMemoryPaymentRepository(),
        assignments=InMemoryAssignmentRepository(),
        processed_events=InMemoryProcessedEventRepository(),
    )


async def mongo_stores(database) -> Stores:
    """Repositories over the service database, with their indexes in place"""
    payments = MongoPaymentRepository(database["payments"])
    assignments = MongoAssignmentRepository(database["courier_assignments"])
    processed_events = ProcessedEventRepository(database)

    await payments.ensure_indexes()
    await assignments.ensure_indexes()
    await processed_events.ensure_indexes()

    return Stores(
        orders=MongoOrderRepository(database["orders"]),
        payments=payments,
        assignments=assignments,
        processed_events=processed_events,
    )


class ServiceRuntime:
    """Lifecycle owner for one service process"""

    def __init__(
        self,
        roles: Iterable[str],
        broker: IMessageBroker,
        stores: Stores,
        courier_policy: Optional[CourierSelectionPolicy] = None,
        auto_assign_delay: Optional[float] = None,
        owns_database: bool = False,
    ):
        self.roles = set(roles)
        self.broker = broker
        self.stores = stores
        self.owns_database = owns_database

        self.order_producer = OrderProducer(broker)
        self.payment_producer = PaymentProducer(broker)
        self.user_producer = UserProducer(broker)

        self.order_service = OrderService(stores.orders, stores.assignments, self.order_producer)
        self.dispatch = DispatchService(
            self.order_service,
            courier_policy or CompletedHistoryPolicy(stores.assignments),
            delay=auto_assign_delay,
        )
        self.payment_service = PaymentService(stores.payments, self.payment_producer)
        self.notification_sender = NotificationSender()
        self.notification_service = NotificationService(self.notification_sender)

        self.consumers: List[EventConsumer] = self._build_consumers()
        self.started = False

    def _build_consumers(self) -> List[EventConsumer]:
        processed = self.stores.processed_events
        consumers: List[EventConsumer] = []
        if PAYMENT_SERVICE in self.roles:
            consumers.append(OrderEventConsumer(self.broker, processed, self.payment_service))
        if ORDER_SERVICE in self.roles:
            consumers.append(PaymentEventConsumer(self.broker, processed, self.order_service, self.dispatch))
            consumers.append(UserEventConsumer(self.broker, processed, self.order_service))
        if NOTIFICATION_SERVICE in self.roles:
            consumers.append(NotificationEventConsumer(self.broker, processed, self.notification_service))
        return consumers

    async def start(self) -> None:
        """Connect the broker and subscribe every consumer; idempotent"""
        if self.started:
            return
        await self.broker.connect()
        for consumer in self.consumers:
            await consumer.start()
        self.started = True
        logger.info(
            "Service runtime started",
            metadata={"roles": sorted(self.roles), "consumers": len(self.consumers)},
        )

    async def stop(self) -> None:
        await self.dispatch.shutdown()
        await self.broker.disconnect()
        if self.owns_database:
            await mongodb.close_mongo_connection()
        self.started = False
        logger.info("Service runtime stopped", metadata={"roles": sorted(self.roles)})

    async def health(self) -> Dict[str, Any]:
        checks = {"broker": self.broker.is_healthy()}
        if self.owns_database:
            checks["database"] = await mongodb.ping()
        return checks


async def create_runtime(settings: Optional[Config] = None) -> ServiceRuntime:
    """Build the runtime described by configuration"""
    settings = settings or default_config
    roles = resolve_roles(settings.service_name)
    broker = MessageBrokerFactory.create(settings=settings)

    backend = settings.storage_backend.lower()
    if backend == "mongodb":
        database = await mongodb.get_database()
        stores = await mongo_stores(database)
        owns_database = True
    elif backend == "memory":
        stores = memory_stores()
        owns_database = False
    else:
        raise ValueError(f"Unsupported storage backend: {backend}. Supported backends: mongodb, memory")

    logger.info(
        f"Creating runtime for {settings.service_name}",
        metadata={"roles": sorted(roles), "storage": backend, "broker": settings.message_broker_type},
    )
    return ServiceRuntime(
        roles,
        broker,
        stores,
        auto_assign_delay=settings.auto_assign_delay,
        owns_database=owns_database,
    )
