"""
Correlation ID utilities for distributed tracing
Shared across the HTTP layer and the broker consumers
"""

import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable to store correlation ID across async operations
correlation_id_context: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> Optional[str]:
    """
    Get the current correlation ID from context

    Returns:
        The correlation ID, or None when nothing set one
    """
    return correlation_id_context.get("") or None


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID in context

    Args:
        correlation_id: The correlation ID to set
    """
    correlation_id_context.set(correlation_id)


def create_correlation_id() -> str:
    """Create a new UUID-based correlation ID"""
    return str(uuid.uuid4())
