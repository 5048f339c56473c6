"""Shared test fixtures"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from factories import make_addresses
from parcel_delivery.messaging import InMemoryBroker, RetryPolicy
from parcel_delivery.models import OrderCreate, Parcel
from parcel_delivery.runtime import ALL_SERVICES, ServiceRuntime, memory_stores


@pytest.fixture
def order_create():
    """Order request body for a customer"""
    return OrderCreate(
        addresses=make_addresses(),
        parcels=[Parcel(weight_kg=1.2, description="Documents")],
        notes="Handle with care",
    )


@pytest.fixture
def broker():
    """In-memory broker with no backoff delay"""
    return InMemoryBroker(retry_policy=RetryPolicy(max_retries=3, base_delay=0))


@pytest.fixture
def runtime(broker):
    """Every service role in one process over in-memory stores"""
    return ServiceRuntime(ALL_SERVICES, broker, memory_stores(), auto_assign_delay=0)


@pytest.fixture
def mock_collection():
    """Mock MongoDB collection for testing"""
    collection = AsyncMock()
    collection.find = MagicMock()
    collection.aggregate = MagicMock()
    return collection


@pytest.fixture
def mock_producer():
    """Producer double whose publish methods report success"""
    producer = MagicMock()
    for name in (
        "publish_order_created",
        "publish_order_status_changed",
        "publish_order_assigned",
        "publish_order_completed",
        "publish_payment_completed",
        "publish_payment_failed",
    ):
        setattr(producer, name, AsyncMock(return_value=True))
    return producer


@pytest.fixture
def client(runtime):
    """TestClient over an app built around the in-memory runtime; lifespan runs on enter"""
    from fastapi.testclient import TestClient
    from main import create_app

    with TestClient(create_app(runtime)) as test_client:
        yield test_client