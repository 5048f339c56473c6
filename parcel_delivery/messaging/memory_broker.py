"""
In-memory broker

Same contract and delivery semantics as RabbitMQBroker (exact-match topic
bindings, durable queues, one message at a time per queue, bounded retries with
backoff, dead-letter queues) without a broker process. Used by the test suite
and for running every service in a single process during local development.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from parcel_delivery.core.logger import logger
from parcel_delivery.utils.correlation_id import set_correlation_id
from .envelope import (
    EVENT_ID_FIELD,
    EventEnvelope,
    MessageDecodeError,
    dead_letter_queue_name,
    decode_body,
    encode_payload,
    ensure_event_id,
)
from .i_message_broker import BrokerState, EventHandler, IMessageBroker, Subscription
from .retry import RETRY_COUNT_HEADER, RetryPolicy, retry_count_from_headers


@dataclass
class _QueuedMessage:
    body: bytes
    routing_key: str
    message_id: Optional[str]
    published_at: datetime
    headers: Dict[str, Any] = field(default_factory=dict)


class InMemoryBroker(IMessageBroker):
    """Process-local implementation of IMessageBroker"""

    def __init__(
        self,
        exchange_name: str = "delivery_exchange",
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.exchange_name = exchange_name
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._state = BrokerState.DISCONNECTED

        self._bindings: Dict[str, List[str]] = {}
        self._queues: Dict[str, asyncio.Queue] = {}
        self._subscriptions: Dict[str, Subscription] = {}

        # Everything accepted by the exchange, in order
        self.published: List[EventEnvelope] = []
        # Dead-lettered envelopes keyed by DLQ name
        self.dead_letters: Dict[str, List[EventEnvelope]] = {}

        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> BrokerState:
        return self._state

    async def connect(self) -> None:
        if self._state == BrokerState.READY:
            return
        self._state = BrokerState.READY
        logger.info("In-memory broker ready", metadata={"exchange": self.exchange_name})

        for subscription in self._subscriptions.values():
            self._start_consumer(subscription)

    async def publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        if self._state != BrokerState.READY:
            logger.error(
                "Cannot publish, broker not ready",
                metadata={"routingKey": routing_key, "state": self._state.value},
            )
            return False

        event_id = ensure_event_id(payload)
        body = encode_payload(payload)
        now = datetime.now(timezone.utc)

        self.published.append(
            EventEnvelope(event_id=event_id, routing_key=routing_key, payload=decode_body(body), published_at=now)
        )
        for queue_name in self._bindings.get(routing_key, []):
            self._enqueue(queue_name, _QueuedMessage(body, routing_key, event_id, now))

        logger.info(
            f"Published event to {routing_key}",
            metadata={"routingKey": routing_key, "eventId": event_id},
        )
        return True

    async def subscribe(self, routing_key: str, queue_name: str, handler: EventHandler) -> None:
        previous = self._subscriptions.get(queue_name)
        if previous is not None:
            await self._stop_consumer(previous)
            if previous.routing_key != routing_key:
                self._unbind(previous.routing_key, queue_name)

        subscription = Subscription(routing_key=routing_key, queue_name=queue_name, handler=handler)
        self._subscriptions[queue_name] = subscription
        self._queues.setdefault(queue_name, asyncio.Queue())
        self.dead_letters.setdefault(dead_letter_queue_name(queue_name), [])

        bound = self._bindings.setdefault(routing_key, [])
        if queue_name not in bound:
            bound.append(queue_name)

        if self._state == BrokerState.READY:
            self._start_consumer(subscription)
        logger.info(
            f"Subscribed to {routing_key} via queue {queue_name} (DLQ enabled)",
            metadata={"routingKey": routing_key, "queue": queue_name},
        )

    def _unbind(self, routing_key: str, queue_name: str) -> None:
        bound = self._bindings.get(routing_key, [])
        if queue_name in bound:
            bound.remove(queue_name)
        if not bound:
            self._bindings.pop(routing_key, None)

    def published_to(self, routing_key: str) -> List[EventEnvelope]:
        return [envelope for envelope in self.published if envelope.routing_key == routing_key]

    async def join(self) -> None:
        """Wait until every queued message, including retries, has settled"""
        await self._idle.wait()

    def _enqueue(self, queue_name: str, message: _QueuedMessage) -> None:
        self._pending += 1
        self._idle.clear()
        self._queues[queue_name].put_nowait(message)

    def _settle(self) -> None:
        self._pending -= 1
        if self._pending == 0:
            self._idle.set()

    def _start_consumer(self, subscription: Subscription) -> None:
        if subscription.task is not None and not subscription.task.done():
            return
        subscription.task = asyncio.get_running_loop().create_task(self._consume(subscription))

    async def _stop_consumer(self, subscription: Subscription) -> None:
        task = subscription.task
        subscription.task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _consume(self, subscription: Subscription) -> None:
        queue = self._queues[subscription.queue_name]
        while True:
            message = await queue.get()
            try:
                await self._process_message(subscription, message)
            except Exception as e:
                logger.error(
                    f"Unexpected error delivering to {subscription.queue_name}",
                    error=e,
                    metadata={"queue": subscription.queue_name},
                )
            finally:
                queue.task_done()
                self._settle()

    async def _process_message(self, subscription: Subscription, message: _QueuedMessage) -> None:
        retry_count = retry_count_from_headers(message.headers)
        if message.message_id:
            set_correlation_id(message.message_id)

        try:
            payload = decode_body(message.body)
        except MessageDecodeError as e:
            logger.error(
                f"Dropping unparseable message from {subscription.queue_name} to DLQ",
                error=e,
                metadata={"queue": subscription.queue_name},
            )
            self._dead_letter(
                subscription,
                EventEnvelope(
                    event_id=message.message_id or "",
                    routing_key=message.routing_key,
                    payload={},
                    published_at=message.published_at,
                    retry_count=retry_count,
                ),
            )
            return

        body = message.body
        if not payload.get(EVENT_ID_FIELD):
            payload[EVENT_ID_FIELD] = message.message_id or ensure_event_id(payload)
            body = encode_payload(payload)

        envelope = EventEnvelope(
            event_id=str(payload[EVENT_ID_FIELD]),
            routing_key=subscription.routing_key,
            payload=payload,
            published_at=message.published_at,
            retry_count=retry_count,
            correlation_id=message.message_id,
        )

        try:
            await subscription.handler(envelope)
        except Exception as e:
            await self._handle_failure(subscription, message, envelope, body, e)

    async def _handle_failure(
        self,
        subscription: Subscription,
        message: _QueuedMessage,
        envelope: EventEnvelope,
        body: bytes,
        error: Exception,
    ) -> None:
        retry_count = envelope.retry_count
        metadata = {
            "queue": subscription.queue_name,
            "eventId": envelope.event_id,
            "retryCount": retry_count,
        }

        if not self.retry_policy.should_retry(retry_count):
            logger.error("Max retries reached for message. Moving to DLQ.", error=error, metadata=metadata)
            self._dead_letter(subscription, envelope)
            return

        delay = self.retry_policy.delay_for(retry_count)
        logger.warning(
            f"Retrying message ({retry_count + 1}/{self.retry_policy.max_retries}) in {delay}s",
            metadata={**metadata, "error": str(error)},
        )
        await self._sleep(delay)
        self._enqueue(
            subscription.queue_name,
            _QueuedMessage(
                body=body,
                routing_key=message.routing_key,
                message_id=envelope.event_id,
                published_at=message.published_at,
                headers={**message.headers, RETRY_COUNT_HEADER: retry_count + 1},
            ),
        )

    def _dead_letter(self, subscription: Subscription, envelope: EventEnvelope) -> None:
        self.dead_letters.setdefault(dead_letter_queue_name(subscription.queue_name), []).append(envelope)

    async def disconnect(self) -> None:
        for subscription in self._subscriptions.values():
            await self._stop_consumer(subscription)
        self._state = BrokerState.DISCONNECTED
        logger.info("In-memory broker stopped")

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "exchange": self.exchange_name,
            "state": self._state.value,
            "queues": {
                name: {
                    "message_count": queue.qsize(),
                    "consumer_count": 1 if name in self._subscriptions else 0,
                    "dead_letter_count": len(self.dead_letters.get(dead_letter_queue_name(name), [])),
                }
                for name, queue in self._queues.items()
            },
        }
