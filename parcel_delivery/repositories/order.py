"""
Order repository for data access layer following Repository pattern

The store is treated as an atomic per-aggregate read/update store. Status
changes are compare-and-set on the current status, so two events racing on the
same order cannot both apply.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from parcel_delivery.core.errors import ErrorResponse
from parcel_delivery.core.logger import logger
from parcel_delivery.models import Order, OrderStatus, TrackingEvent, TERMINAL_STATUSES, to_plain, utc_now


class OrderRepository(ABC):
    """Persistence contract for the order aggregate"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        ...

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    async def apply_transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        changes: Dict[str, Any],
        tracking_event: TrackingEvent,
    ) -> Optional[Order]:
        """
        Atomically set fields and append a tracking event

        Returns:
            The updated order, or None if the order no longer has expected_status
        """

    @abstractmethod
    async def list_by_courier(self, courier_id: str, active_only: bool = True) -> List[Order]:
        ...

    @abstractmethod
    async def list(
        self, filters: Dict[str, Any], skip: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Order], int]:
        """
        Orders matching every field in filters, newest first

        Returns:
            The requested page and the total number of matches
        """


class MongoOrderRepository(OrderRepository):
    """Order repository backed by a MongoDB collection"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    @staticmethod
    def _doc_to_order(doc: Optional[dict]) -> Optional[Order]:
        if not doc:
            return None
        doc = dict(doc)
        doc.pop("_id", None)
        return Order.model_validate(doc)

    async def create(self, order: Order) -> Order:
        try:
            doc = order.to_document()
            doc["_id"] = order.order_id
            await self.collection.insert_one(doc)
            return order
        except PyMongoError as e:
            logger.error("MongoDB error creating order", error=e, metadata={"orderId": order.order_id})
            raise ErrorResponse("Database error during order creation", status_code=503)

    async def get(self, order_id: str) -> Optional[Order]:
        try:
            doc = await self.collection.find_one({"_id": order_id})
            return self._doc_to_order(doc)
        except PyMongoError as e:
            logger.error("MongoDB error getting order", error=e, metadata={"orderId": order_id})
            raise ErrorResponse("Database error during order retrieval", status_code=503)

    async def apply_transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        changes: Dict[str, Any],
        tracking_event: TrackingEvent,
    ) -> Optional[Order]:
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": order_id, "status": expected_status.value},
                {
                    "$set": {**to_plain(changes), "updated_at": utc_now()},
                    "$push": {"tracking_events": tracking_event.to_document()},
                },
                return_document=ReturnDocument.AFTER,
            )
            return self._doc_to_order(doc)
        except PyMongoError as e:
            logger.error("MongoDB error updating order status", error=e, metadata={"orderId": order_id})
            raise ErrorResponse("Database error during order update", status_code=503)

    async def list_by_courier(self, courier_id: str, active_only: bool = True) -> List[Order]:
        query: Dict[str, Any] = {"courier_id": courier_id}
        if active_only:
            query["status"] = {"$nin": [s.value for s in TERMINAL_STATUSES]}
        try:
            cursor = self.collection.find(query).sort("scheduled_pickup_time", 1)
            docs = await cursor.to_list(length=None)
            return [self._doc_to_order(doc) for doc in docs]
        except PyMongoError as e:
            logger.error("MongoDB error listing courier orders", error=e, metadata={"courierId": courier_id})
            raise ErrorResponse("Database error during order retrieval", status_code=503)

    async def list(
        self, filters: Dict[str, Any], skip: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Order], int]:
        query = to_plain(filters)
        try:
            total_count = await self.collection.count_documents(query)

            cursor = self.collection.find(query).sort("created_at", -1).skip(skip)
            if limit is not None:
                cursor = cursor.limit(limit)
            docs = await cursor.to_list(length=limit)

            return [self._doc_to_order(doc) for doc in docs], total_count
        except PyMongoError as e:
            logger.error("MongoDB error listing orders", error=e, metadata={"filters": query})
            raise ErrorResponse("Database error during order retrieval", status_code=503)


class InMemoryOrderRepository(OrderRepository):
    """Order repository kept in process memory"""

    def __init__(self):
        self._orders: Dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def create(self, order: Order) -> Order:
        async with self._lock:
            self._orders[order.order_id] = order.model_copy(deep=True)
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def apply_transition(
        self,
        order_id: str,
        expected_status: OrderStatus,
        changes: Dict[str, Any],
        tracking_event: TrackingEvent,
    ) -> Optional[Order]:
        async with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.status != expected_status:
                return None

            updated = current.model_copy(
                deep=True,
                update={
                    **changes,
                    "updated_at": utc_now(),
                    "tracking_events": [*current.tracking_events, tracking_event],
                },
            )
            self._orders[order_id] = updated
            return updated.model_copy(deep=True)

    async def list_by_courier(self, courier_id: str, active_only: bool = True) -> List[Order]:
        return [
            order.model_copy(deep=True)
            for order in self._orders.values()
            if order.courier_id == courier_id and not (active_only and order.status in TERMINAL_STATUSES)
        ]

    async def list(
        self, filters: Dict[str, Any], skip: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Order], int]:
        matches = [
            order for order in self._orders.values()
            if all(getattr(order, field) == value for field, value in filters.items())
        ]
        matches.sort(key=lambda order: order.created_at, reverse=True)
        end = skip + limit if limit is not None else None
        return [order.model_copy(deep=True) for order in matches[skip:end]], len(matches)
