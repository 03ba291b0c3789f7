"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from salesflow.api.dependencies import get_service_container
from salesflow.core.container import ServiceContainer
from salesflow.database.db import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
def health(container: ServiceContainer = Depends(get_service_container)) -> dict:
    cfg = container.config
    return {"status": "ok", "service": cfg.APP_NAME, "version": cfg.APP_VERSION}


@router.get("/health/ready")
def readiness(container: ServiceContainer = Depends(get_service_container)) -> JSONResponse:
    checks = {
        "database": verify_database_connection(container.database_engine()),
        "redis": container.job_store().ping(),
    }
    ready = all(checks.values())
    # Informational: replies are still persisted while the instance is offline.
    messaging = container.messaging.check_connection()
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "degraded",
            "checks": checks,
            "messaging": {"connected": messaging.connected, "state": messaging.state},
        },
    )


@router.get("/health/queue")
async def queue_stats(container: ServiceContainer = Depends(get_service_container)) -> dict:
    stats = await run_in_threadpool(container.job_store().stats)
    return {"queue": container.config.QUEUE_NAME, **stats}
