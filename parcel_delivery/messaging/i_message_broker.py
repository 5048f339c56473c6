"""
Message Broker Interface
Defines the contract for all message broker implementations (RabbitMQ, in-memory)
Services depend on this contract only, so the transport can be swapped without
touching producers, consumers or domain services.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .envelope import EventEnvelope

EventHandler = Callable[[EventEnvelope], Awaitable[None]]


class BrokerState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    READY = "READY"


@dataclass
class Subscription:
    """A queue bound to one routing key and consumed by one handler"""
    routing_key: str
    queue_name: str
    handler: EventHandler
    task: Optional[Any] = field(default=None, repr=False)


class IMessageBroker(ABC):
    """Abstract base class for message broker implementations"""

    @property
    @abstractmethod
    def state(self) -> BrokerState:
        """Current connection lifecycle state"""

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the connection and declare the topic exchange

        Idempotent. A failure is never raised to the caller: the broker keeps
        reconnecting in the background until it becomes READY.
        """

    @abstractmethod
    async def publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        """
        Publish a payload on the topic exchange

        Args:
            routing_key: Routing key to publish under
            payload: JSON-serializable dict; gets an eventId if it has none

        Returns:
            True if the broker accepted the message, False otherwise
        """

    @abstractmethod
    async def subscribe(self, routing_key: str, queue_name: str, handler: EventHandler) -> None:
        """
        Bind a durable queue (with its dead-letter pair) and start consuming it

        Args:
            routing_key: Routing key the queue is bound under
            queue_name: Durable queue name, namespaced by consuming service
            handler: Async callback receiving an EventEnvelope; raising makes
                the broker retry and eventually dead-letter the message
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close the connection; no reconnect is attempted afterwards
        """

    def is_healthy(self) -> bool:
        """
        Check if the broker connection is healthy

        Returns:
            True if connected and ready, False otherwise
        """
        return self.state == BrokerState.READY

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        """
        Get queue statistics for monitoring
        """
