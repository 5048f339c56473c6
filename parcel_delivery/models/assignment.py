"""
Courier assignment history. At most one ACTIVE assignment per order.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from .base import DomainModel, new_id, utc_now


class AssignmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CourierAssignment(DomainModel):
    assignment_id: str = Field(default_factory=new_id)
    order_id: str
    courier_id: str
    vehicle_id: Optional[str] = None
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    assigned_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
