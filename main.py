"""
FastAPI Application - Parcel Delivery Services
One process per service role (SERVICE_NAME): order-service, payment-service,
notification-service, or all of them together for local development
"""

# Load environment variables from .env file FIRST before any other imports
from dotenv import load_dotenv
load_dotenv()

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from parcel_delivery.api import health, orders, payments
from parcel_delivery.core.config import config
from parcel_delivery.core.errors import ErrorResponse, error_response_handler, unhandled_exception_handler
from parcel_delivery.core.logger import logger
from parcel_delivery.core.telemetry import init_telemetry, instrument_app
from parcel_delivery.middleware import CorrelationIdMiddleware
from parcel_delivery.runtime import ORDER_SERVICE, PAYMENT_SERVICE, ServiceRuntime, create_runtime, resolve_roles

# Initialize OpenTelemetry tracing BEFORE creating FastAPI app
init_telemetry()


async def validation_exception_handler(request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content={"error": "Validation error", "details": exc.errors()})


def create_app(runtime: Optional[ServiceRuntime] = None) -> FastAPI:
    """
    Build the application for the configured service role

    Args:
        runtime: Pre-built runtime (tests, embedding); built from config otherwise
    """
    roles = runtime.roles if runtime is not None else resolve_roles(config.service_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info(f"Starting {config.service_name}...")
        app.state.runtime = runtime or await create_runtime()
        await app.state.runtime.start()

        logger.info(
            f"{config.service_name} started successfully",
            metadata={
                "service_name": config.service_name,
                "version": config.service_version,
                "environment": config.environment,
                "port": config.port
            }
        )

        yield

        logger.info(f"Shutting down {config.service_name}...")
        await app.state.runtime.stop()

    app = FastAPI(
        title="Parcel Delivery Service",
        description="Order, payment and notification services coordinated through RabbitMQ events",
        version=config.service_version,
        lifespan=lifespan
    )

    # Configure error handlers
    app.add_exception_handler(ErrorResponse, error_response_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(CorrelationIdMiddleware)

    # Instrument app with OpenTelemetry for automatic tracing
    instrument_app(app)

    # Include API routers
    app.include_router(health.router, tags=["health"])
    if ORDER_SERVICE in roles:
        app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
    if PAYMENT_SERVICE in roles:
        app.include_router(payments.router, prefix="/api/payments", tags=["payments"])

    return app


if __name__ == "__main__":
    import uvicorn

    logger.info(
        f"Starting {config.service_name} on port {config.port}",
        metadata={
            "service_name": config.service_name,
            "version": config.service_version,
            "environment": config.environment,
            "port": config.port
        }
    )

    uvicorn.run(
        "main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=config.environment == "development"
    )
