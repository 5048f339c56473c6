"""
Error handling utilities

ErrorResponse is the application error surfaced to synchronous callers.
The domain errors below subclass it so the HTTP layer renders them with the
right status code, while the event consumers decide per class whether a
failure is permanent (dropped) or transient (retried by the broker).
"""

import traceback
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from parcel_delivery.core.config import config
from parcel_delivery.core.logger import logger


class ErrorResponse(Exception):
    """Custom exception for application errors"""

    def __init__(self, message: str, status_code: int = 400, details: Optional[dict] = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ErrorResponseModel(BaseModel):
    """Pydantic model for error responses"""
    error: str
    details: Optional[dict] = None


class OrderNotFoundError(ErrorResponse):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found", status_code=404, details={"orderId": order_id})


class PaymentNotFoundError(ErrorResponse):
    def __init__(self, order_id: str):
        super().__init__(
            f"Payment for order {order_id} not found", status_code=404, details={"orderId": order_id}
        )


class InvalidTransitionError(ErrorResponse):
    """The requested status change is not an edge of the order state graph."""

    def __init__(self, order_id: str, current_status: str, requested_status: str, reason: str = ""):
        message = f"Cannot move order {order_id} from {current_status} to {requested_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            status_code=409,
            details={
                "orderId": order_id,
                "currentStatus": current_status,
                "requestedStatus": requested_status,
            },
        )
        self.current_status = current_status
        self.requested_status = requested_status


class UnauthorizedTransitionError(ErrorResponse):
    """The requester is not allowed to issue this status change."""

    def __init__(self, order_id: str, requested_status: str, requester_id: Optional[str] = None):
        super().__init__(
            "You are not assigned to this order",
            status_code=403,
            details={"orderId": order_id, "requestedStatus": requested_status, "requesterId": requester_id},
        )


class ConcurrentModificationError(ErrorResponse):
    """The aggregate changed between read and write."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} {entity_id} was modified concurrently",
            status_code=409,
            details={"entity": entity, "id": entity_id},
        )


class PaymentStateError(ErrorResponse):
    def __init__(self, order_id: str, status: str):
        super().__init__(
            f"Payment for order {order_id} is already {status}",
            status_code=409,
            details={"orderId": order_id, "status": status},
        )


class AssignmentConflictError(ErrorResponse):
    def __init__(self, order_id: str):
        super().__init__(
            f"Order {order_id} already has an active courier assignment",
            status_code=409,
            details={"orderId": order_id},
        )


class InvalidEventPayloadError(ErrorResponse):
    """A consumed event is missing required identifiers; never retried."""

    def __init__(self, routing_key: str, missing: list):
        super().__init__(
            f"Invalid {routing_key} event: missing {', '.join(missing)}",
            status_code=400,
            details={"routingKey": routing_key, "missing": missing},
        )
        self.missing = missing


async def error_response_handler(request: Request, exc: ErrorResponse):
    """Handler for ErrorResponse and its subclasses"""
    metadata = {
        "event": "error_response",
        "status_code": exc.status_code,
        "url": str(request.url),
        "method": request.method,
        **exc.details,
    }
    logger.warning(f"Error: {exc.message}", metadata=metadata)

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "details": exc.details},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Generic server error for anything the domain did not anticipate"""
    metadata = {
        "event": "unhandled_exception",
        "url": str(request.url),
        "method": request.method,
    }
    if config.environment == "development":
        metadata["traceback"] = traceback.format_exc()

    logger.error("Unhandled exception", error=exc, metadata=metadata)
    return JSONResponse(status_code=500, content={"error": "Server error"})
