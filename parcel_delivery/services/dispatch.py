"""
Dispatch: automatic courier assignment for confirmed orders

The courier choice sits behind CourierSelectionPolicy. The default policy is a
placeholder that reuses couriers known from dispatch history; real geospatial
matching would plug in here.
"""

import asyncio
from typing import Optional, Protocol, Set

from parcel_delivery.core.config import config
from parcel_delivery.core.logger import logger
from parcel_delivery.models import Order, OrderStatus
from parcel_delivery.repositories import AssignmentRepository
from parcel_delivery.services.order_service import OrderService

AUTO_ASSIGN_NOTE = "Automatically assigned by system"


class CourierSelectionPolicy(Protocol):
    async def select_courier(self, order: Order) -> Optional[str]:
        """Courier id to assign to order, or None if nobody is available"""
        ...


class CompletedHistoryPolicy:
    """Pick a courier who has completed a delivery before and is not busy now"""

    def __init__(self, assignments: AssignmentRepository):
        self.assignments = assignments

    async def select_courier(self, order: Order) -> Optional[str]:
        for courier_id in await self.assignments.find_couriers_with_completed():
            if not await self.assignments.has_active_for_courier(courier_id):
                return courier_id
        return None


class DispatchService:
    """Auto-assignment workflow triggered by payment confirmation"""

    def __init__(
        self,
        order_service: OrderService,
        policy: CourierSelectionPolicy,
        delay: Optional[float] = None,
    ):
        self.order_service = order_service
        self.policy = policy
        self.delay = config.auto_assign_delay if delay is None else delay
        self._pending: Set[asyncio.Task] = set()

    async def auto_assign_order(self, order_id: str) -> bool:
        """
        Try to bind a courier to a CONFIRMED order

        Returns:
            True if a courier was assigned, False otherwise; never raises
        """
        try:
            logger.info(f"Starting auto-assignment for order {order_id}", metadata={"orderId": order_id})

            order = await self.order_service.orders.get(order_id)
            if order is None or order.status != OrderStatus.CONFIRMED:
                logger.warning(
                    f"Order {order_id} not eligible for auto-assignment",
                    metadata={"orderId": order_id, "status": order.status.value if order else None},
                )
                return False

            courier_id = await self.policy.select_courier(order)
            if not courier_id:
                logger.info(
                    "No available courier found. Waiting for manual claim.",
                    metadata={"orderId": order_id},
                )
                return False

            await self.order_service.assign_courier(order_id, courier_id, notes=AUTO_ASSIGN_NOTE)
            logger.info(
                f"Assigned order {order_id} to courier {courier_id}",
                metadata={"orderId": order_id, "courierId": courier_id},
            )
            return True

        except Exception as e:
            logger.error("Auto-assignment failed", error=e, metadata={"orderId": order_id})
            return False

    def schedule_auto_assignment(self, order_id: str) -> asyncio.Task:
        """Run auto_assign_order after the configured delay, in the background"""
        task = asyncio.get_running_loop().create_task(self._delayed_auto_assign(order_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _delayed_auto_assign(self, order_id: str) -> bool:
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        return await self.auto_assign_order(order_id)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def wait_for_pending(self) -> None:
        """Wait for every scheduled auto-assignment to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel scheduled auto-assignments that have not run yet"""
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()
        if tasks:
            logger.info(f"Cancelled {len(tasks)} pending auto-assignments")
