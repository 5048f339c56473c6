"""
Event envelope and wire helpers shared by every broker implementation

On the wire the message body is the flat JSON payload with its eventId inside,
so producers and consumers in other services stay compatible. Everything else
in the envelope (routing key, publish time, retry count) travels as message
properties and headers.
"""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

EVENT_ID_FIELD = "eventId"


class RoutingKeys:
    """Routing keys bound on the delivery topic exchange"""
    ORDER_CREATED = "order.created"
    ORDER_STATUS_CHANGED = "order.status.changed"
    ORDER_ASSIGNED = "order.assigned"
    ORDER_COMPLETED = "order.completed"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_FAILED = "payment.failed"
    USER_UPDATED = "user.updated"
    COURIER_AVAILABILITY_CHANGED = "courier.availability.changed"


class MessageDecodeError(ValueError):
    """The message body is not a JSON object"""


class EventEnvelope(BaseModel):
    """A consumed event as handed to a handler"""
    event_id: str
    routing_key: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    published_at: Optional[datetime] = None
    retry_count: int = 0
    correlation_id: Optional[str] = None


def ensure_event_id(payload: Dict[str, Any]) -> str:
    """
    Assign an idempotency key to the payload if it has none

    The payload is updated in place so that every later serialization of it,
    including retries, carries the same id.
    """
    event_id = payload.get(EVENT_ID_FIELD)
    if not event_id:
        event_id = str(uuid.uuid4())
        payload[EVENT_ID_FIELD] = event_id
    return str(event_id)


def encode_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, default=str).encode("utf-8")


def decode_body(body: bytes) -> Dict[str, Any]:
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageDecodeError(f"Failed to parse message JSON: {e}") from e

    if not isinstance(data, dict):
        raise MessageDecodeError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def dead_letter_exchange_name(exchange_name: str) -> str:
    return f"{exchange_name}.dlx"


def dead_letter_queue_name(queue_name: str) -> str:
    return f"{queue_name}.dlq"
