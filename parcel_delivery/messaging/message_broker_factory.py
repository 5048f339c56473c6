"""
Message Broker Factory
Creates the appropriate message broker instance based on configuration
"""

from typing import Optional

from parcel_delivery.core.config import Config, config as default_config
from parcel_delivery.core.logger import logger
from .i_message_broker import IMessageBroker
from .memory_broker import InMemoryBroker
from .rabbitmq_broker import RabbitMQBroker
from .retry import RetryPolicy


class MessageBrokerFactory:
    """Factory for creating message broker instances"""

    @staticmethod
    def create(broker_type: Optional[str] = None, settings: Optional[Config] = None) -> IMessageBroker:
        """
        Create a message broker instance

        Args:
            broker_type: "rabbitmq" or "memory"; defaults to MESSAGE_BROKER_TYPE
            settings: Configuration to read connection details from

        Returns:
            IMessageBroker implementation
        """
        settings = settings or default_config
        broker_type = (broker_type or settings.message_broker_type).lower()
        retry_policy = RetryPolicy(max_retries=settings.max_retries, base_delay=settings.retry_base_delay)

        logger.info(f"Creating message broker: {broker_type}", metadata={"service": settings.service_name})

        if broker_type == "rabbitmq":
            return RabbitMQBroker(
                settings.rabbitmq_url,
                exchange_name=settings.exchange_name,
                retry_policy=retry_policy,
                prefetch_count=settings.broker_prefetch_count,
                reconnect_delay_after_close=settings.reconnect_delay_after_close,
                reconnect_delay_after_failure=settings.reconnect_delay_after_failure,
            )

        if broker_type == "memory":
            return InMemoryBroker(exchange_name=settings.exchange_name, retry_policy=retry_policy)

        raise ValueError(
            f"Unsupported message broker type: {broker_type}. "
            f"Supported types: rabbitmq, memory"
        )
