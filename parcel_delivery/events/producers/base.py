"""
Base producer: serializes a domain fact onto a routing key
"""

from datetime import datetime, timezone
from typing import Any, Dict

from parcel_delivery.core.logger import logger
from parcel_delivery.messaging import IMessageBroker
from parcel_delivery.utils.correlation_id import get_correlation_id


class EventProducer:
    """Fire-and-forget publisher shared by the per-service producers"""

    # Left out of the message when unset; every other field is always sent
    optional_fields = frozenset({"courierId", "vehicleId"})

    def __init__(self, broker: IMessageBroker):
        self.broker = broker

    async def _publish(self, routing_key: str, payload: Dict[str, Any]) -> bool:
        """
        Publish an event without ever failing the caller

        The caller's local change is already committed, so a failed publish is
        logged and reported as False rather than raised.
        """
        payload = {
            k: v for k, v in payload.items()
            if v is not None or k not in self.optional_fields
        }
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        correlation_id = get_correlation_id()

        try:
            published = await self.broker.publish(routing_key, payload)
        except Exception as e:
            logger.error(
                f"Error publishing event: {routing_key}",
                correlation_id=correlation_id,
                error=e,
                metadata={"routingKey": routing_key},
            )
            return False

        if not published:
            logger.error(
                f"Failed to publish event: {routing_key}",
                correlation_id=correlation_id,
                metadata={"routingKey": routing_key, "orderId": payload.get("orderId")},
            )
        return published
