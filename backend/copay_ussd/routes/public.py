# /copay_ussd/routes/public.py

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest
from datetime import datetime, timezone

from copay_ussd.config.settings import settings
from copay_ussd.utils.dependencies import verify_metrics_access
from copay_ussd.services.directory_service import db_service
from copay_ussd.services.session_store import session_store

# This file defines public-facing endpoints that do not require aggregator
# traffic, such as health checks and the root endpoint. The /metrics endpoint
# is conditionally protected by an API key.

router = APIRouter()

@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.service_name,
        "version": settings.version,
        "status": "operational",
        "environment": settings.environment
    }

@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}

@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check():
    """Readiness probe: the session store and the directory database must answer."""
    try:
        if not await session_store.ping():
            raise RuntimeError("session store did not answer")
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service not ready: {e}")
    if not await db_service.health_check():
        raise HTTPException(status_code=503, detail="Service not ready: database unavailable")
    return {"status": "ready"}

@router.get("/health/live", summary="Liveness Probe")
async def liveness_check():
    """Kubernetes/Docker liveness probe."""
    return {"status": "alive"}


@router.get("/metrics", tags=["Monitoring"])
async def metrics(request: Request, _: bool = Depends(verify_metrics_access)):
    """Secured Prometheus metrics endpoint."""
    return PlainTextResponse(generate_latest(), media_type="text/plain")
