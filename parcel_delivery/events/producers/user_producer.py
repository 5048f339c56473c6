"""
User-service events consumed by order-service

user-service itself lives outside this package; the producer keeps its wire
contract in one place for the local runtime and the tests.
"""

from typing import Optional

from parcel_delivery.messaging import RoutingKeys
from .base import EventProducer


class UserProducer(EventProducer):

    async def publish_user_updated(self, user_id: str, email: Optional[str] = None, role: Optional[str] = None) -> bool:
        return await self._publish(RoutingKeys.USER_UPDATED, {
            "user_id": user_id,
            "email": email,
            "role": role,
        })

    async def publish_courier_availability_changed(
        self, courier_id: str, is_available: bool, status: Optional[str] = None
    ) -> bool:
        return await self._publish(RoutingKeys.COURIER_AVAILABILITY_CHANGED, {
            "courierId": courier_id,
            "isAvailable": is_available,
            "status": status,
        })
