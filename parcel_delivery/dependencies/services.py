"""
Dependency injection for the services held by the process runtime
"""

from fastapi import Depends, Request

from parcel_delivery.core.errors import ErrorResponse
from parcel_delivery.runtime import ServiceRuntime
from parcel_delivery.services import DispatchService, OrderService, PaymentService


def get_runtime(request: Request) -> ServiceRuntime:
    """Get the runtime started by the application lifespan"""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise ErrorResponse("Service is starting up", status_code=503)
    return runtime


def get_order_service(runtime: ServiceRuntime = Depends(get_runtime)) -> OrderService:
    return runtime.order_service


def get_dispatch_service(runtime: ServiceRuntime = Depends(get_runtime)) -> DispatchService:
    return runtime.dispatch


def get_payment_service(runtime: ServiceRuntime = Depends(get_runtime)) -> PaymentService:
    return runtime.payment_service
