"""
Payment aggregate, owned by payment-service. One payment per order, created
lazily when order.created is consumed.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .base import DomainModel, new_id, utc_now


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"


class Payment(DomainModel):
    payment_id: str = Field(default_factory=new_id)
    order_id: str
    customer_id: str
    amount: float = 0
    currency_code: str = "ETB"
    payment_method: str = "MOBILE_MONEY"
    status: PaymentStatus = PaymentStatus.PENDING
    gateway_reference: Optional[str] = None
    failure_reason: Optional[str] = None
    captured_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ProcessPaymentRequest(DomainModel):
    """Gateway confirmation for an order's payment"""
    order_id: str = Field(..., min_length=1)
    amount: Optional[float] = Field(default=None, ge=0)
    transaction_id: Optional[str] = None


class FailPaymentRequest(DomainModel):
    """Gateway denial for an order's payment"""
    order_id: str = Field(..., min_length=1)
    reason: Optional[str] = None
