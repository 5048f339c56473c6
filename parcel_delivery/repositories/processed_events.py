"""
Repository for tracking processed events to ensure idempotency

Records are scoped per consumer: the same event fans out to several services,
and each of them applies it once.
"""

import asyncio
from datetime import datetime, timezone, timedelta
from typing import Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import IndexModel, ASCENDING
from pymongo.errors import DuplicateKeyError

from parcel_delivery.core.logger import logger


class ProcessedEventRepository:
    """Repository for managing processed events"""

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "processed_events"):
        self.collection = db[collection_name]
        self._indexes_created = False

    async def ensure_indexes(self):
        """Create indexes for processed events collection"""
        if self._indexes_created:
            return

        indexes = [
            IndexModel([("event_id", ASCENDING), ("consumer", ASCENDING)], unique=True, name="event_consumer_unique"),
            IndexModel([("event_type", ASCENDING)], name="event_type_idx"),
            IndexModel([("processed_at", ASCENDING)], expireAfterSeconds=2592000, name="ttl_idx"),  # 30 days TTL
            IndexModel([("order_id", ASCENDING)], name="order_id_idx"),
        ]

        await self.collection.create_indexes(indexes)
        self._indexes_created = True
        logger.info("Processed events indexes created")

    async def is_processed(self, event_id: str, consumer: str) -> bool:
        """
        Check if event has already been processed

        Args:
            event_id: Unique event identifier
            consumer: Name of the consuming handler

        Returns:
            True if event was already processed, False otherwise
        """
        result = await self.collection.find_one({"event_id": event_id, "consumer": consumer})
        return result is not None

    async def mark_processed(
        self,
        event_id: str,
        consumer: str,
        event_type: str,
        order_id: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> bool:
        """
        Mark an event as processed

        Args:
            event_id: Unique event identifier
            consumer: Name of the consuming handler
            event_type: Routing key of the event (payment.completed, order.created, etc.)
            order_id: Order the event refers to
            metadata: Additional metadata about the event processing

        Returns:
            True if successfully marked, False if already exists
        """
        try:
            document = {
                "event_id": event_id,
                "consumer": consumer,
                "event_type": event_type,
                "order_id": order_id,
                "processed_at": datetime.now(timezone.utc),
                "metadata": metadata or {},
            }

            result = await self.collection.insert_one(document)
            return result.inserted_id is not None

        except DuplicateKeyError:
            logger.warning(f"Event {event_id} already processed by {consumer} (duplicate key)")
            return False

    async def get_processed_count(self, hours: int = 24) -> dict:
        """
        Get count of processed events in the last N hours

        Args:
            hours: Number of hours to look back

        Returns:
            Dictionary with counts by event type
        """
        since = datetime.now(timezone.utc) - timedelta(hours=hours)

        pipeline = [
            {"$match": {"processed_at": {"$gte": since}}},
            {"$group": {
                "_id": "$event_type",
                "count": {"$sum": 1}
            }},
            {"$sort": {"count": -1}}
        ]

        results = await self.collection.aggregate(pipeline).to_list(length=None)

        return {
            "total": sum(r["count"] for r in results),
            "by_type": {r["_id"]: r["count"] for r in results},
            "since": since.isoformat()
        }


class InMemoryProcessedEventRepository:
    """Processed-event log kept in process memory"""

    def __init__(self):
        self._events: Dict[Tuple[str, str], dict] = {}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self):
        return None

    async def is_processed(self, event_id: str, consumer: str) -> bool:
        return (event_id, consumer) in self._events

    async def mark_processed(
        self,
        event_id: str,
        consumer: str,
        event_type: str,
        order_id: Optional[str] = None,
        metadata: Optional[dict] = None
    ) -> bool:
        async with self._lock:
            key = (event_id, consumer)
            if key in self._events:
                return False
            self._events[key] = {
                "event_type": event_type,
                "order_id": order_id,
                "processed_at": datetime.now(timezone.utc),
                "metadata": metadata or {},
            }
            return True

    async def get_processed_count(self, hours: int = 24) -> dict:
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        by_type: Dict[str, int] = {}
        for record in self._events.values():
            if record["processed_at"] >= since:
                by_type[record["event_type"]] = by_type.get(record["event_type"], 0) + 1
        return {"total": sum(by_type.values()), "by_type": by_type, "since": since.isoformat()}
