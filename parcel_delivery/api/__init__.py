from . import health, orders, payments

__all__ = ["health", "orders", "payments"]
