"""
Health check endpoints.
"""

import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dutywatch.config import settings
from dutywatch.dependencies import get_broadcaster, get_lookup_client, get_store
from dutywatch.repositories.base import SessionStore
from dutywatch.services.broadcaster import UpdateBroadcaster
from dutywatch.services.profile_lookup.client import ProfileLookupClient

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "dutywatch"}


@router.get("/readyz")
async def readyz(
    store: SessionStore = Depends(get_store),
    lookup_client: ProfileLookupClient | None = Depends(get_lookup_client),
    broadcaster: UpdateBroadcaster = Depends(get_broadcaster),
):
    """
    Readiness check covering the session store and the Roblox client.

    Returns 503 only when the store is unhealthy; Roblox problems are reported
    but do not take the service out of rotation.
    """
    checks = {}

    t0 = time.time()
    try:
        store_health = await store.health_check()
        store_ok = bool(store_health.get("healthy", False))
        checks["store"] = {
            "ok": store_ok,
            "backend": store.name,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        if not store_ok:
            checks["store"]["error"] = store_health.get("error", "Store unhealthy")
    except Exception as e:
        store_ok = False
        checks["store"] = {
            "ok": False,
            "backend": store.name,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }

    if lookup_client is not None:
        lookup_health = await lookup_client.health_check()
        checks["roblox"] = {
            "ok": lookup_health["healthy"],
            "privileged_enabled": lookup_health["privileged_enabled"],
            "cooling_down": lookup_health["rate_limit"]["cooling_down"],
        }

    checks["broadcaster"] = {"ok": True, "subscribers": broadcaster.subscriber_count}

    body = {
        "overall_ok": store_ok,
        "environment": settings.environment,
        "checks": checks,
        "timestamp": time.time(),
    }
    if not store_ok:
        return JSONResponse(status_code=503, content=body)
    return body
