"""
Order API endpoints (order-service)
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from parcel_delivery.core.errors import ErrorResponse, ErrorResponseModel
from parcel_delivery.dependencies import (
    Requester,
    get_dispatch_service,
    get_order_service,
    get_requester,
    require_role,
)
from parcel_delivery.models import (
    AssignCourierRequest,
    CancelOrderRequest,
    Order,
    OrderCreate,
    OrderStatus,
    Priority,
    StatusUpdateRequest,
)
from parcel_delivery.services import DispatchService, OrderService

router = APIRouter()


def _can_view(order: Order, requester: Requester) -> bool:
    return (
        requester.is_admin
        or order.customer_id == requester.user_id
        or (order.courier_id is not None and order.courier_id == requester.user_id)
    )


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponseModel}, 401: {"model": ErrorResponseModel}},
)
async def create_order(
    order_data: OrderCreate,
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    """Place a new order for the requesting customer"""
    require_role(requester, "CUSTOMER", "ADMIN")
    order = await service.create_order(order_data, customer_id=requester.user_id)
    return order.to_response()


@router.get("", responses={403: {"model": ErrorResponseModel}})
async def list_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    priority: Optional[Priority] = Query(None),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    courier_id: Optional[str] = Query(None, alias="courierId"),
    limit: int = Query(50, ge=1, le=1000, description="Max orders to return"),
    offset: int = Query(0, ge=0, description="Number of orders to skip"),
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    """Admin view of every order, filtered and paginated, newest first"""
    require_role(requester, "ADMIN")
    return await service.list_orders(
        status=order_status,
        priority=priority,
        customer_id=customer_id,
        courier_id=courier_id,
        limit=limit,
        offset=offset,
    )


@router.get("/my-orders")
async def get_my_orders(
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
) -> List[dict]:
    """Orders placed by the requesting customer, newest first"""
    require_role(requester, "CUSTOMER")
    orders = await service.list_customer_orders(requester.user_id)
    return [order.to_response() for order in orders]


@router.get("/courier-orders")
async def get_courier_orders(
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
) -> List[dict]:
    """Active orders assigned to the requesting courier"""
    require_role(requester, "COURIER")
    orders = await service.list_courier_orders(requester.user_id)
    return [order.to_response() for order in orders]


@router.get("/{order_id}", responses={403: {"model": ErrorResponseModel}, 404: {"model": ErrorResponseModel}})
async def get_order(
    order_id: str,
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    """Get an order; visible to its customer, its courier and admins"""
    order = await service.get_order(order_id)
    if not _can_view(order, requester):
        raise ErrorResponse("Access denied", status_code=403)
    return order.to_response()


@router.patch(
    "/{order_id}/status",
    responses={403: {"model": ErrorResponseModel}, 409: {"model": ErrorResponseModel}},
)
async def update_order_status(
    order_id: str,
    update: StatusUpdateRequest,
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    """Courier-driven delivery progress (pickup, transit, delivery, failure, return)"""
    require_role(requester, "COURIER")
    order = await service.update_status_by_courier(order_id, requester.user_id, update)
    return order.to_response()


@router.post("/{order_id}/assign", responses={409: {"model": ErrorResponseModel}})
async def assign_courier(
    order_id: str,
    assignment: AssignCourierRequest,
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    """Manual assignment by an admin, or a courier claiming a confirmed order"""
    require_role(requester, "ADMIN", "COURIER")
    if requester.is_courier and assignment.courier_id != requester.user_id:
        raise ErrorResponse("Couriers can only claim orders for themselves", status_code=403)

    order = await service.assign_courier(order_id, assignment.courier_id, vehicle_id=assignment.vehicle_id)
    return order.to_response()


@router.post("/{order_id}/cancel", responses={403: {"model": ErrorResponseModel}, 409: {"model": ErrorResponseModel}})
async def cancel_order(
    order_id: str,
    body: Optional[CancelOrderRequest] = None,
    requester: Requester = Depends(get_requester),
    service: OrderService = Depends(get_order_service),
):
    """Cancel an order that has not been picked up yet"""
    order = await service.cancel_order(
        order_id,
        requester_id=requester.user_id,
        is_admin=requester.is_admin,
        reason=body.reason if body else None,
    )
    return order.to_response()


@router.post("/{order_id}/auto-assign")
async def auto_assign(
    order_id: str,
    requester: Requester = Depends(get_requester),
    dispatch: DispatchService = Depends(get_dispatch_service),
):
    """Run auto-assignment now instead of waiting for the scheduled trigger"""
    require_role(requester, "ADMIN")
    assigned = await dispatch.auto_assign_order(order_id)
    return {"orderId": order_id, "assigned": assigned}
