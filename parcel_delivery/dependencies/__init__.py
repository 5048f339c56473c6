from .requester import Requester, get_requester, require_role
from .services import get_order_service, get_payment_service, get_runtime, get_dispatch_service

__all__ = [
    "Requester",
    "get_dispatch_service",
    "get_order_service",
    "get_payment_service",
    "get_requester",
    "get_runtime",
    "require_role",
]
