"""Builders and helpers shared by the test modules"""

from parcel_delivery.models import (
    Address,
    AddressType,
    AssignmentStatus,
    CourierAssignment,
    Order,
    OrderStatus,
    Parcel,
    utc_now,
)


def make_addresses():
    return [
        Address(
            address_type=AddressType.PICKUP,
            contact_name="Abebe Kebede",
            contact_phone="+251911000001",
            street_address="Bole Road 12",
            subcity="Bole",
        ),
        Address(
            address_type=AddressType.DELIVERY,
            contact_name="Sara Tesfaye",
            contact_phone="+251911000002",
            street_address="Piassa 4",
            subcity="Arada",
        ),
    ]


def make_order(order_id="O1", customer_id="C1", status=OrderStatus.PENDING, courier_id=None, **overrides):
    """Order as stored by order-service, without tracking history"""
    return Order(
        order_id=order_id,
        customer_id=customer_id,
        status=status,
        courier_id=courier_id,
        addresses=make_addresses(),
        parcels=[Parcel(weight_kg=2.5, description="Books")],
        **overrides,
    )


def completed_assignment(courier_id, order_id="old-order"):
    return CourierAssignment(
        order_id=order_id,
        courier_id=courier_id,
        status=AssignmentStatus.COMPLETED,
        completed_at=utc_now(),
    )


async def settle(runtime):
    """Wait until every event, retry and scheduled auto-assignment has run"""
    await runtime.broker.join()
    while runtime.dispatch.pending_count:
        await runtime.dispatch.wait_for_pending()
        await runtime.broker.join()


def headers(user_id, role="CUSTOMER"):
    """Identity headers as forwarded by the API gateway"""
    return {"X-User-Id": user_id, "X-User-Role": role}
