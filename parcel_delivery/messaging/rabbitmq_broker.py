"""
RabbitMQ Broker Implementation
Implements the IMessageBroker interface for RabbitMQ using aio-pika

One connection and one channel per service process. Every subscription gets a
durable queue bound to the topic exchange, a dead-letter exchange/queue pair,
and its own consumption task so queues are processed independently while each
queue handles one message at a time.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aio_pika
from aio_pika import DeliveryMode, ExchangeType
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
)

from parcel_delivery.core.logger import logger
from parcel_delivery.utils.correlation_id import set_correlation_id
from .envelope import (
    EVENT_ID_FIELD,
    EventEnvelope,
    MessageDecodeError,
    dead_letter_exchange_name,
    dead_letter_queue_name,
    decode_body,
    encode_payload,
    ensure_event_id,
)
from .i_message_broker import BrokerState, EventHandler, IMessageBroker, Subscription
from .retry import RETRY_COUNT_HEADER, RetryPolicy, retry_count_from_headers


class RabbitMQBroker(IMessageBroker):
    """RabbitMQ implementation of IMessageBroker with async support"""

    def __init__(
        self,
        rabbitmq_url: str,
        exchange_name: str = "delivery_exchange",
        retry_policy: Optional[RetryPolicy] = None,
        prefetch_count: int = 1,
        reconnect_delay_after_close: float = 3.0,
        reconnect_delay_after_failure: float = 5.0,
    ):
        """
        Initialize RabbitMQ broker

        Args:
            rabbitmq_url: RabbitMQ connection URL
            exchange_name: Durable topic exchange shared by all services
            retry_policy: Redelivery budget and backoff for failed handlers
            prefetch_count: Unacked messages per consumer
            reconnect_delay_after_close: Seconds to wait after the connection drops
            reconnect_delay_after_failure: Seconds to wait after a failed connect
        """
        self.rabbitmq_url = rabbitmq_url
        self.exchange_name = exchange_name
        self.retry_policy = retry_policy or RetryPolicy()
        self.prefetch_count = prefetch_count
        self.reconnect_delay_after_close = reconnect_delay_after_close
        self.reconnect_delay_after_failure = reconnect_delay_after_failure

        self.connection: Optional[AbstractConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self.exchange: Optional[AbstractExchange] = None

        self._state = BrokerState.DISCONNECTED
        self._closing = False
        self._connect_lock = asyncio.Lock()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._subscriptions: Dict[str, Subscription] = {}

    @property
    def state(self) -> BrokerState:
        return self._state

    async def connect(self) -> None:
        """Connect to RabbitMQ and declare the topic exchange"""
        async with self._connect_lock:
            if self._state == BrokerState.READY:
                return

            self._closing = False
            self._state = BrokerState.CONNECTING
            try:
                logger.info("Connecting to RabbitMQ...", metadata={"exchange": self.exchange_name})

                self.connection = await aio_pika.connect(self.rabbitmq_url)
                self.channel = await self.connection.channel()
                await self.channel.set_qos(prefetch_count=self.prefetch_count)
                self.exchange = await self.channel.declare_exchange(
                    self.exchange_name, ExchangeType.TOPIC, durable=True
                )

                self.connection.close_callbacks.add(self._on_connection_closed)
                self.channel.close_callbacks.add(self._on_connection_closed)

                self._state = BrokerState.READY
                logger.info("RabbitMQ connected successfully", metadata={"exchange": self.exchange_name})
            except Exception as e:
                self._state = BrokerState.DISCONNECTED
                logger.error(
                    "Failed to connect to RabbitMQ",
                    error=e,
                    metadata={"retryInSeconds": self.reconnect_delay_after_failure},
                )
                self._schedule_reconnect(self.reconnect_delay_after_failure)
                return

        # Re-provision everything that was subscribed before a reconnect
        for subscription in list(self._subscriptions.values()):
            try:
                await self._provision(subscription)
            except Exception as e:
                logger.error(
                    f"Failed to restore subscription for queue {subscription.queue_name}",
                    error=e,
                    metadata={"routingKey": subscription.routing_key},
                )

    def _on_connection_closed(self, *args) -> None:
        if self._closing or self._state == BrokerState.DISCONNECTED:
            return

        logger.error(
            "RabbitMQ connection closed. Reconnecting...",
            metadata={"retryInSeconds": self.reconnect_delay_after_close},
        )
        self._state = BrokerState.DISCONNECTED
        self.exchange = None
        self._schedule_reconnect(self.reconnect_delay_after_close)

    def _schedule_reconnect(self, delay: float) -> None:
        if self._closing:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None

        stale = self.connection
        if stale is not None and not stale.is_closed:
            try:
                await stale.close()
            except Exception as e:
                logger.warning("Error closing stale RabbitMQ connection", metadata={"error": str(e)})

        await self.connect()

    async def publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        """Publish a persistent message; never raises"""
        if self._state != BrokerState.READY or self.exchange is None:
            logger.error(
                "Cannot publish, broker not ready",
                metadata={"routingKey": routing_key, "state": self._state.value},
            )
            return False

        event_id = ensure_event_id(payload)
        message = aio_pika.Message(
            body=encode_payload(payload),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=event_id,
            correlation_id=event_id,
            timestamp=datetime.now(timezone.utc),
            headers={},
        )

        try:
            await self.exchange.publish(message, routing_key=routing_key)
        except Exception as e:
            logger.error(
                f"Failed to publish to {routing_key}",
                error=e,
                metadata={"routingKey": routing_key, "eventId": event_id},
            )
            return False

        logger.info(
            f"Published event to {routing_key}",
            metadata={"routingKey": routing_key, "eventId": event_id},
        )
        return True

    async def subscribe(self, routing_key: str, queue_name: str, handler: EventHandler) -> None:
        """Register a subscription and provision it now if the broker is ready"""
        previous = self._subscriptions.get(queue_name)
        if previous is not None:
            await self._stop_consumer(previous)

        subscription = Subscription(routing_key=routing_key, queue_name=queue_name, handler=handler)
        self._subscriptions[queue_name] = subscription

        if self._state != BrokerState.READY:
            logger.warning(
                f"Broker not ready, subscription to {routing_key} deferred until connected",
                metadata={"queue": queue_name},
            )
            return

        await self._provision(subscription)

    async def _provision(self, subscription: Subscription) -> None:
        if self.channel is None or self.exchange is None:
            raise RuntimeError("Channel not initialized. Call connect() first.")

        await self._stop_consumer(subscription)

        # 1. Dead-letter exchange and queue
        dead_letter_exchange = await self.channel.declare_exchange(
            dead_letter_exchange_name(self.exchange_name), ExchangeType.TOPIC, durable=True
        )
        dead_letter_queue = await self.channel.declare_queue(
            dead_letter_queue_name(subscription.queue_name), durable=True
        )
        # Keyed by queue name so each DLQ only sees its own rejects
        await dead_letter_queue.bind(dead_letter_exchange, routing_key=subscription.queue_name)

        # 2. Main queue routed to the dead-letter pair on reject
        queue = await self.channel.declare_queue(
            subscription.queue_name,
            durable=True,
            arguments={
                "x-dead-letter-exchange": dead_letter_exchange.name,
                "x-dead-letter-routing-key": subscription.queue_name,
            },
        )
        await queue.bind(self.exchange, routing_key=subscription.routing_key)

        subscription.task = asyncio.get_running_loop().create_task(self._consume(subscription, queue))
        logger.info(
            f"Subscribed to {subscription.routing_key} via queue {subscription.queue_name} (DLQ enabled)",
            metadata={"routingKey": subscription.routing_key, "queue": subscription.queue_name},
        )

    async def _consume(self, subscription: Subscription, queue: AbstractQueue) -> None:
        try:
            async with queue.iterator() as queue_iter:
                async for message in queue_iter:
                    await self._process_message(subscription, message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Consumer for queue {subscription.queue_name} stopped",
                error=e,
                metadata={"queue": subscription.queue_name},
            )

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

    async def _process_message(self, subscription: Subscription, message: AbstractIncomingMessage) -> None:
        """Handle one delivery: ack on success, retry or dead-letter on failure"""
        headers = dict(message.headers or {})
        retry_count = retry_count_from_headers(headers)
        correlation_id = message.correlation_id or message.message_id
        if correlation_id:
            set_correlation_id(correlation_id)

        try:
            payload = decode_body(message.body)
        except MessageDecodeError as e:
            logger.error(
                f"Dropping unparseable message from {subscription.queue_name} to DLQ",
                error=e,
                metadata={"queue": subscription.queue_name, "messageId": message.message_id},
            )
            await message.nack(requeue=False)
            return

        # Retries must carry the same idempotency key as the first delivery
        body = message.body
        if not payload.get(EVENT_ID_FIELD):
            payload[EVENT_ID_FIELD] = message.message_id or ensure_event_id(payload)
            body = encode_payload(payload)

        envelope = EventEnvelope(
            event_id=str(payload[EVENT_ID_FIELD]),
            routing_key=subscription.routing_key,
            payload=payload,
            published_at=message.timestamp,
            retry_count=retry_count,
            correlation_id=correlation_id,
        )

        try:
            await subscription.handler(envelope)
        except Exception as e:
            await self._handle_failure(subscription, message, envelope, body, headers, e)
            return

        await message.ack()
        logger.debug(
            "Message processed successfully",
            metadata={"queue": subscription.queue_name, "eventId": envelope.event_id},
        )

    async def _handle_failure(
        self,
        subscription: Subscription,
        message: AbstractIncomingMessage,
        envelope: EventEnvelope,
        body: bytes,
        headers: Dict[str, Any],
        error: Exception,
    ) -> None:
        retry_count = envelope.retry_count
        metadata = {
            "queue": subscription.queue_name,
            "routingKey": subscription.routing_key,
            "eventId": envelope.event_id,
            "retryCount": retry_count,
        }

        if not self.retry_policy.should_retry(retry_count):
            logger.error("Max retries reached for message. Moving to DLQ.", error=error, metadata=metadata)
            await message.nack(requeue=False)
            return

        delay = self.retry_policy.delay_for(retry_count)
        logger.warning(
            f"Retrying message ({retry_count + 1}/{self.retry_policy.max_retries}) in {delay}s",
            metadata={**metadata, "error": str(error)},
        )
        await asyncio.sleep(delay)

        retry_message = aio_pika.Message(
            body=body,
            content_type=message.content_type or "application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=envelope.event_id,
            correlation_id=message.correlation_id or envelope.event_id,
            timestamp=message.timestamp,
            headers={**headers, RETRY_COUNT_HEADER: retry_count + 1},
        )
        try:
            # Straight back to this queue only, other queues bound to the key
            # already received their copy
            await self.channel.default_exchange.publish(retry_message, routing_key=subscription.queue_name)
        except Exception as e:
            logger.error("Failed to republish for retry, moving to DLQ", error=e, metadata=metadata)
            await message.nack(requeue=False)
            return

        await message.ack()

    async def disconnect(self) -> None:
        """Close RabbitMQ connection"""
        logger.info("Stopping RabbitMQ broker...")
        self._closing = True

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

        for subscription in self._subscriptions.values():
            await self._stop_consumer(subscription)

        try:
            if self.channel is not None and not self.channel.is_closed:
                await self.channel.close()
            if self.connection is not None and not self.connection.is_closed:
                await self.connection.close()
        except Exception as e:
            logger.error("Error closing RabbitMQ connection", error=e)
        finally:
            self._state = BrokerState.DISCONNECTED
            self.channel = None
            self.exchange = None
            self.connection = None
            logger.info("RabbitMQ connection closed")

    def is_healthy(self) -> bool:
        """Check if broker connection is healthy"""
        return (
            self._state == BrokerState.READY
            and self.connection is not None
            and not self.connection.is_closed
        )

    async def get_stats(self) -> Dict[str, Any]:
        """Get RabbitMQ queue statistics"""
        stats: Dict[str, Any] = {
            "exchange": self.exchange_name,
            "state": self._state.value,
            "queues": {},
        }
        if self.channel is None or self._state != BrokerState.READY:
            return stats

        for queue_name in self._subscriptions:
            try:
                queue = await self.channel.declare_queue(queue_name, passive=True)
                dead_letters = await self.channel.declare_queue(dead_letter_queue_name(queue_name), passive=True)
                stats["queues"][queue_name] = {
                    "message_count": queue.declaration_result.message_count,
                    "consumer_count": queue.declaration_result.consumer_count,
                    "dead_letter_count": dead_letters.declaration_result.message_count,
                }
            except Exception as e:
                logger.error(f"Error getting stats for queue {queue_name}", error=e)
                stats["queues"][queue_name] = {"error": str(e)}
        return stats
