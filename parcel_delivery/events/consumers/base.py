"""
Base event consumer

Wraps each handler with the rules every consumer shares:

* an eventId already applied by this consumer is skipped,
* a payload missing required identifiers is logged and dropped,
* a transition the state machine rejects is logged and dropped, and one that
  finds the order already in the requested status is a no-op,
* anything else propagates to the broker, which retries and dead-letters.
"""

from typing import Any, Awaitable, Callable, Dict, List, NamedTuple

from parcel_delivery.core.errors import (
    InvalidEventPayloadError,
    InvalidTransitionError,
    UnauthorizedTransitionError,
)
from parcel_delivery.core.logger import logger
from parcel_delivery.messaging import EventEnvelope, IMessageBroker

PayloadHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class Binding(NamedTuple):
    routing_key: str
    queue_name: str
    handler: PayloadHandler


def require(payload: Dict[str, Any], routing_key: str, *fields: str) -> None:
    """Raise InvalidEventPayloadError if any of fields is missing or empty"""
    missing = [name for name in fields if payload.get(name) in (None, "")]
    if missing:
        raise InvalidEventPayloadError(routing_key, missing)


class EventConsumer:
    """Subscribes a set of handlers, one durable queue per routing key"""

    service_name = "service"

    def __init__(self, broker: IMessageBroker, processed_events):
        self.broker = broker
        self.processed_events = processed_events

    def bindings(self) -> List[Binding]:
        raise NotImplementedError

    async def start(self) -> None:
        for binding in self.bindings():
            await self.broker.subscribe(binding.routing_key, binding.queue_name, self._wrap(binding))
        logger.info(f"{self.service_name} consumers initialized", metadata={"service": self.service_name})

    def _wrap(self, binding: Binding):
        async def on_event(envelope: EventEnvelope) -> None:
            await self.handle(binding, envelope)
        return on_event

    async def handle(self, binding: Binding, envelope: EventEnvelope) -> None:
        metadata = {
            "routingKey": envelope.routing_key,
            "queue": binding.queue_name,
            "eventId": envelope.event_id,
            "orderId": envelope.payload.get("orderId"),
        }

        if await self.processed_events.is_processed(envelope.event_id, binding.queue_name):
            logger.info("Skipping already processed event", metadata=metadata)
            return

        logger.info(f"Received {envelope.routing_key} event", metadata={**metadata, "retryCount": envelope.retry_count})

        try:
            await binding.handler(envelope.payload)
        except InvalidEventPayloadError as e:
            logger.warning(f"Dropping invalid event: {e.message}", metadata={**metadata, "missing": e.missing})
            return
        except InvalidTransitionError as e:
            if e.current_status == e.requested_status:
                logger.info(f"Order already {e.current_status}, nothing to do", metadata=metadata)
            else:
                logger.warning(f"Dropping event rejected by order state machine: {e.message}", metadata=metadata)
        except UnauthorizedTransitionError as e:
            logger.warning(f"Dropping unauthorized transition: {e.message}", metadata=metadata)

        await self.processed_events.mark_processed(
            envelope.event_id,
            binding.queue_name,
            envelope.routing_key,
            order_id=envelope.payload.get("orderId"),
        )
