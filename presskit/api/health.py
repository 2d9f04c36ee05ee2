"""
Health check endpoints.

- GET /healthz: liveness, no dependencies touched
- GET /readyz: store reachable and schema present
- GET /api/v1/health: readiness detail (store + cache), no secrets
"""
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from presskit.core.database import metadata
from presskit.core.logging import get_request_id, latency_bucket_ms
from presskit.dependencies import Services, get_services

logger = logging.getLogger("presskit")

router = APIRouter(prefix="/health", tags=["health"])
root_router = APIRouter(tags=["health"])


def _missing_tables(services: Services) -> list:
    return [name for name in metadata.tables if not services.db.has_table(name)]


@root_router.get("/healthz")
def healthz():
    return {"status": "ok"}


@root_router.get("/readyz")
def readyz(services: Services = Depends(get_services)):
    if not services.db.check_connection():
        return JSONResponse(status_code=503, content={"status": "unavailable", "reason": "database"})
    missing = _missing_tables(services)
    if missing:
        return JSONResponse(status_code=503, content={"status": "unavailable", "reason": "schema", "missing": missing})
    return {"status": "ready"}


@router.get("")
def health(services: Services = Depends(get_services)):
    start = time.perf_counter()
    connected = services.db.check_connection()
    latency_ms = (time.perf_counter() - start) * 1000
    missing = _missing_tables(services) if connected else []
    ready = connected and not missing

    logger.info(
        "health.check",
        extra={"request_id": get_request_id(), "ok": ready, "latency_bucket": latency_bucket_ms(latency_ms)},
    )
    body = {
        "success": ready,
        "status": "ok" if ready else "unavailable",
        "database": {"connected": connected, "missingTables": missing},
        "cache": {"connected": services.cache.ping()},
        "environment": services.settings.ENV,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return JSONResponse(status_code=200 if ready else 503, content=body)
