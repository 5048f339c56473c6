"""
Core module initialization
"""

from .config import config, Config
from .errors import (
    AssignmentConflictError,
    ConcurrentModificationError,
    ErrorResponse,
    ErrorResponseModel,
    InvalidEventPayloadError,
    InvalidTransitionError,
    OrderNotFoundError,
    PaymentNotFoundError,
    PaymentStateError,
    UnauthorizedTransitionError,
)
from .logger import logger

__all__ = [
    "config",
    "Config",
    "logger",
    "ErrorResponse",
    "ErrorResponseModel",
    "AssignmentConflictError",
    "ConcurrentModificationError",
    "InvalidEventPayloadError",
    "InvalidTransitionError",
    "OrderNotFoundError",
    "PaymentNotFoundError",
    "PaymentStateError",
    "UnauthorizedTransitionError",
]
