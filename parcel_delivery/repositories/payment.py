"""
Payment repository. Payments are unique per order; creation is idempotent on
the orderId natural key.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, IndexModel, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from parcel_delivery.core.errors import ErrorResponse
from parcel_delivery.core.logger import logger
from parcel_delivery.models import Payment, PaymentStatus, to_plain, utc_now


class PaymentRepository(ABC):
    """Persistence contract for the payment aggregate"""

    @abstractmethod
    async def create_if_absent(self, payment: Payment) -> Tuple[Payment, bool]:
        """
        Create the payment unless one already exists for its order

        Returns:
            (stored payment, True if it was created by this call)
        """

    @abstractmethod
    async def get_by_order(self, order_id: str) -> Optional[Payment]:
        ...

    @abstractmethod
    async def update_status(
        self, order_id: str, expected_status: PaymentStatus, changes: Dict[str, Any]
    ) -> Optional[Payment]:
        """Compare-and-set on status; None if the payment is not in expected_status"""


class MongoPaymentRepository(PaymentRepository):
    """Payment repository backed by a MongoDB collection"""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection
        self._indexes_created = False

    async def ensure_indexes(self):
        """Create the unique orderId index that backs idempotent creation"""
        if self._indexes_created:
            return
        await self.collection.create_indexes([
            IndexModel([("order_id", ASCENDING)], unique=True, name="order_id_unique"),
        ])
        self._indexes_created = True
        logger.info("Payment indexes created")

    @staticmethod
    def _doc_to_payment(doc: Optional[dict]) -> Optional[Payment]:
        if not doc:
            return None
        doc = dict(doc)
        doc.pop("_id", None)
        return Payment.model_validate(doc)

    async def create_if_absent(self, payment: Payment) -> Tuple[Payment, bool]:
        try:
            doc = payment.to_document()
            doc["_id"] = payment.payment_id
            await self.collection.insert_one(doc)
            return payment, True
        except DuplicateKeyError:
            existing = await self.get_by_order(payment.order_id)
            return existing, False
        except PyMongoError as e:
            logger.error("MongoDB error creating payment", error=e, metadata={"orderId": payment.order_id})
            raise ErrorResponse("Database error during payment creation", status_code=503)

    async def get_by_order(self, order_id: str) -> Optional[Payment]:
        try:
            return self._doc_to_payment(await self.collection.find_one({"order_id": order_id}))
        except PyMongoError as e:
            logger.error("MongoDB error getting payment", error=e, metadata={"orderId": order_id})
            raise ErrorResponse("Database error during payment retrieval", status_code=503)

    async def update_status(
        self, order_id: str, expected_status: PaymentStatus, changes: Dict[str, Any]
    ) -> Optional[Payment]:
        try:
            doc = await self.collection.find_one_and_update(
                {"order_id": order_id, "status": expected_status.value},
                {"$set": {**to_plain(changes), "updated_at": utc_now()}},
                return_document=ReturnDocument.AFTER,
            )
            return self._doc_to_payment(doc)
        except PyMongoError as e:
            logger.error("MongoDB error updating payment", error=e, metadata={"orderId": order_id})
            raise ErrorResponse("Database error during payment update", status_code=503)


class InMemoryPaymentRepository(PaymentRepository):
    """Payment repository kept in process memory, keyed by orderId"""

    def __init__(self):
        self._payments: Dict[str, Payment] = {}
        self._lock = asyncio.Lock()

    async def create_if_absent(self, payment: Payment) -> Tuple[Payment, bool]:
        async with self._lock:
            existing = self._payments.get(payment.order_id)
            if existing is not None:
                return existing.model_copy(deep=True), False
            self._payments[payment.order_id] = payment.model_copy(deep=True)
            return payment, True

    async def get_by_order(self, order_id: str) -> Optional[Payment]:
        payment = self._payments.get(order_id)
        return payment.model_copy(deep=True) if payment else None

    async def update_status(
        self, order_id: str, expected_status: PaymentStatus, changes: Dict[str, Any]
    ) -> Optional[Payment]:
        async with self._lock:
            current = self._payments.get(order_id)
            if current is None or current.status != expected_status:
                return None
            updated = current.model_copy(deep=True, update={**changes, "updated_at": utc_now()})
            self._payments[order_id] = updated
            return updated.model_copy(deep=True)

    def count(self) -> int:
        return len(self._payments)
