"""
Health and operational API endpoints
"""

import time
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from parcel_delivery.core.config import config
from parcel_delivery.core.logger import logger
from parcel_delivery.dependencies import get_runtime
from parcel_delivery.runtime import ServiceRuntime

router = APIRouter()

# Track service start time
start_time = time.time()


@router.get("/health")
def health_check(request: Request):
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": config.service_name,
        "timestamp": datetime.now().isoformat(),
        "version": config.service_version,
    }


@router.get("/health/ready")
async def readiness_check(runtime: ServiceRuntime = Depends(get_runtime)):
    """Readiness check - ready once the broker connection is READY"""
    checks = await runtime.health()
    failed = [name for name, healthy in checks.items() if not healthy]

    body = {
        "service": config.service_name,
        "timestamp": datetime.now().isoformat(),
        "broker": runtime.broker.state.value,
        "checks": {name: "healthy" if healthy else "unhealthy" for name, healthy in checks.items()},
    }
    if not failed:
        return {"status": "ready", **body}

    logger.warning(
        f"Readiness check failed - {len(failed)} checks failed",
        metadata={"failed_checks": failed, "event": "readiness_check_failed"},
    )
    return JSONResponse(status_code=503, content={"status": "not ready", **body})


@router.get("/health/live")
def liveness_check(request: Request):
    """Liveness check - whether the app is running"""
    return {
        "status": "alive",
        "service": config.service_name,
        "timestamp": datetime.now().isoformat(),
        "uptime": time.time() - start_time,
    }


@router.get("/api/operational/broker")
async def broker_stats(hours: int = Query(24, ge=1), runtime: ServiceRuntime = Depends(get_runtime)):
    """Queue depths, consumer counts and recently processed events for this process"""
    stats = await runtime.broker.get_stats()
    stats["processed_events"] = await runtime.stores.processed_events.get_processed_count(hours)
    return stats
