"""
Messaging module for the delivery services
Provides the message broker abstraction for RabbitMQ and an in-memory transport
"""

from .envelope import EventEnvelope, MessageDecodeError, RoutingKeys
from .i_message_broker import BrokerState, EventHandler, IMessageBroker, Subscription
from .memory_broker import InMemoryBroker
from .message_broker_factory import MessageBrokerFactory
from .rabbitmq_broker import RabbitMQBroker
from .retry import RETRY_COUNT_HEADER, RetryPolicy, retry_count_from_headers

__all__ = [
    "BrokerState",
    "EventEnvelope",
    "EventHandler",
    "IMessageBroker",
    "InMemoryBroker",
    "MessageBrokerFactory",
    "MessageDecodeError",
    "RabbitMQBroker",
    "RETRY_COUNT_HEADER",
    "RetryPolicy",
    "RoutingKeys",
    "Subscription",
    "retry_count_from_headers",
]
