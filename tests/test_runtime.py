"""Tests for process wiring: roles, consumers and lifecycle"""
import asyncio

import pytest

from parcel_delivery.messaging import BrokerState
from parcel_delivery.runtime import (
    ALL_SERVICES,
    ORDER_SERVICE,
    PAYMENT_SERVICE,
    ServiceRuntime,
    memory_stores,
    resolve_roles,
)
from parcel_delivery.worker import ConsumerWorker


def test_resolve_roles():
    assert resolve_roles("all") == set(ALL_SERVICES)
    assert resolve_roles(PAYMENT_SERVICE) == {PAYMENT_SERVICE}
    with pytest.raises(ValueError):
        resolve_roles("inventory-service")


def test_consumers_follow_roles(broker):
    runtime = ServiceRuntime({ORDER_SERVICE}, broker, memory_stores())

    assert [type(c).__name__ for c in runtime.consumers] == ["PaymentEventConsumer", "UserEventConsumer"]


@pytest.mark.asyncio
async def test_start_subscribes_each_queue_once(runtime, broker):
    await runtime.start()
    await runtime.start()
    try:
        stats = await broker.get_stats()
        assert len(stats["queues"]) == 11
        assert broker.state == BrokerState.READY
        assert await runtime.health() == {"broker": True}
    finally:
        await runtime.stop()

    assert broker.state == BrokerState.DISCONNECTED
    assert await runtime.health() == {"broker": False}


@pytest.mark.asyncio
async def test_worker_runs_until_stopped(runtime, broker):
    worker = ConsumerWorker(runtime)

    task = asyncio.create_task(worker.start())
    while not runtime.started:
        await asyncio.sleep(0)
    worker.request_stop()
    await task
    await worker.stop()

    assert broker.state == BrokerState.DISCONNECTED
