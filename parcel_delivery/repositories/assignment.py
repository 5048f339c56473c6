"""
Courier assignment repository

At most one ACTIVE assignment exists per order. Dispatch history (COMPLETED
assignments) is what the default courier selection policy reads.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from parcel_delivery.core.errors import AssignmentConflictError, ErrorResponse
from parcel_delivery.core.logger import logger
from parcel_delivery.models import AssignmentStatus, CourierAssignment, utc_now


class AssignmentRepository(ABC):
    """Persistence contract for courier assignments"""

    @abstractmethod
    async def create_active(self, assignment: CourierAssignment) -> CourierAssignment:
        """
        Store an ACTIVE assignment

        Raises:
            AssignmentConflictError: The order already has an ACTIVE assignment
        """

    @abstractmethod
    async def find_active_for_order(self, order_id: str) -> Optional[CourierAssignment]:
        ...

    @abstractmethod
    async def has_active_for_courier(self, courier_id: str) -> bool:
        ...

    @abstractmethod
    async def find_couriers_with_completed(self) -> List[str]:
        """Distinct courier ids with at least one COMPLETED assignment, oldest first"""

    @abstractmethod
    async def close_active(self, order_id: str, status: AssignmentStatus) -> Optional[CourierAssignment]:
        """Move the order's ACTIVE assignment to status; None if there is none"""


class MongoAssignmentRepository(AssignmentRepository):
    """Assignment repository backed by a MongoDB collection"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection
        self._indexes_created = False

    async def ensure_indexes(self):
        """Create the partial unique index enforcing one ACTIVE assignment per order"""
        if self._indexes_created:
            return

        indexes = [
            IndexModel(
                [("order_id", ASCENDING)],
                unique=True,
                partialFilterExpression={"status": AssignmentStatus.ACTIVE.value},
                name="active_order_unique",
            ),
            IndexModel([("courier_id", ASCENDING), ("status", ASCENDING)], name="courier_status_idx"),
        ]
        await self.collection.create_indexes(indexes)
        self._indexes_created = True
        logger.info("Assignment indexes created")

    @staticmethod
    def _doc_to_assignment(doc: Optional[dict]) -> Optional[CourierAssignment]:
        if not doc:
            return None
        doc = dict(doc)
        doc.pop("_id", None)
        return CourierAssignment.model_validate(doc)

    async def create_active(self, assignment: CourierAssignment) -> CourierAssignment:
        try:
            doc = assignment.to_document()
            doc["_id"] = assignment.assignment_id
            await self.collection.insert_one(doc)
            return assignment
        except DuplicateKeyError:
            raise AssignmentConflictError(assignment.order_id)
        except PyMongoError as e:
            logger.error("MongoDB error creating assignment", error=e, metadata={"orderId": assignment.order_id})
            raise ErrorResponse("Database error during assignment creation", status_code=503)

    async def find_active_for_order(self, order_id: str) -> Optional[CourierAssignment]:
        try:
            doc = await self.collection.find_one(
                {"order_id": order_id, "status": AssignmentStatus.ACTIVE.value}
            )
            return self._doc_to_assignment(doc)
        except PyMongoError as e:
            logger.error("MongoDB error getting assignment", error=e, metadata={"orderId": order_id})
            raise ErrorResponse("Database error during assignment retrieval", status_code=503)

    async def has_active_for_courier(self, courier_id: str) -> bool:
        try:
            count = await self.collection.count_documents(
                {"courier_id": courier_id, "status": AssignmentStatus.ACTIVE.value}, limit=1
            )
            return count > 0
        except PyMongoError as e:
            logger.error("MongoDB error checking courier assignments", error=e, metadata={"courierId": courier_id})
            raise ErrorResponse("Database error during assignment retrieval", status_code=503)

    async def find_couriers_with_completed(self) -> List[str]:
        pipeline = [
            {"$match": {"status": AssignmentStatus.COMPLETED.value}},
            {"$group": {"_id": "$courier_id", "first_completed": {"$min": "$completed_at"}}},
            {"$sort": {"first_completed": 1}},
        ]
        try:
            results = await self.collection.aggregate(pipeline).to_list(length=None)
            return [r["_id"] for r in results if r["_id"]]
        except PyMongoError as e:
            logger.error("MongoDB error aggregating courier history", error=e)
            raise ErrorResponse("Database error during assignment retrieval", status_code=503)

    async def close_active(self, order_id: str, status: AssignmentStatus) -> Optional[CourierAssignment]:
        try:
            doc = await self.collection.find_one_and_update(
                {"order_id": order_id, "status": AssignmentStatus.ACTIVE.value},
                {"$set": {"status": status.value, "completed_at": utc_now()}},
                return_document=ReturnDocument.AFTER,
            )
            return self._doc_to_assignment(doc)
        except PyMongoError as e:
            logger.error("MongoDB error closing assignment", error=e, metadata={"orderId": order_id})
            raise ErrorResponse("Database error during assignment update", status_code=503)


class InMemoryAssignmentRepository(AssignmentRepository):
    """Assignment repository kept in process memory"""

    def __init__(self):
        self._assignments: List[CourierAssignment] = []
        self._lock = asyncio.Lock()

    async def create_active(self, assignment: CourierAssignment) -> CourierAssignment:
        async with self._lock:
            if self._active_for_order(assignment.order_id) is not None:
                raise AssignmentConflictError(assignment.order_id)
            self._assignments.append(assignment.model_copy(deep=True))
        return assignment

    def _active_for_order(self, order_id: str) -> Optional[CourierAssignment]:
        for assignment in self._assignments:
            if assignment.order_id == order_id and assignment.status == AssignmentStatus.ACTIVE:
                return assignment
        return None

    async def find_active_for_order(self, order_id: str) -> Optional[CourierAssignment]:
        assignment = self._active_for_order(order_id)
        return assignment.model_copy(deep=True) if assignment else None

    async def has_active_for_courier(self, courier_id: str) -> bool:
        return any(
            a.courier_id == courier_id and a.status == AssignmentStatus.ACTIVE for a in self._assignments
        )

    async def find_couriers_with_completed(self) -> List[str]:
        couriers: Dict[str, None] = {}
        completed = [a for a in self._assignments if a.status == AssignmentStatus.COMPLETED]
        for assignment in sorted(completed, key=lambda a: a.completed_at or a.assigned_at):
            couriers.setdefault(assignment.courier_id, None)
        return list(couriers)

    async def close_active(self, order_id: str, status: AssignmentStatus) -> Optional[CourierAssignment]:
        async with self._lock:
            for index, assignment in enumerate(self._assignments):
                if assignment.order_id == order_id and assignment.status == AssignmentStatus.ACTIVE:
                    closed = assignment.model_copy(update={"status": status, "completed_at": utc_now()})
                    self._assignments[index] = closed
                    return closed.model_copy(deep=True)
        return None

    async def add(self, assignment: CourierAssignment) -> None:
        """Seed an assignment in any status, e.g. dispatch history"""
        async with self._lock:
            self._assignments.append(assignment.model_copy(deep=True))

    def all(self) -> List[CourierAssignment]:
        return [a.model_copy(deep=True) for a in self._assignments]
