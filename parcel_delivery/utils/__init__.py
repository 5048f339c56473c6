from .correlation_id import (
    correlation_id_context,
    create_correlation_id,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "correlation_id_context",
    "create_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]
