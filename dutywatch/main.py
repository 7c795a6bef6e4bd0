"""
Application entry point with service lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from dutywatch import __version__
from dutywatch.config import settings
from dutywatch.infrastructure.observability.logging import get_logger, setup_logging
from dutywatch.middleware.request_context import RequestContextMiddleware
from dutywatch.repositories import build_session_store
from dutywatch.routes import duty, health, updates, verification
from dutywatch.routes.errors import register_error_handlers
from dutywatch.services.broadcaster import UpdateBroadcaster
from dutywatch.services.duty_session_service import DutySessionService
from dutywatch.services.profile_lookup.client import ProfileLookupClient
from dutywatch.services.verification.service import VerificationService

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the store, Roblox client and engines; tear them down on shutdown."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    store = build_session_store()
    try:
        await store.initialize()
    except Exception as e:
        logger.error("Failed to initialize session store", backend=store.name, error=str(e))
        await store.close()
        raise

    lookup_client = ProfileLookupClient()
    broadcaster = UpdateBroadcaster(queue_size=settings.BROADCAST_QUEUE_SIZE)

    app.state.store = store
    app.state.lookup_client = lookup_client
    app.state.broadcaster = broadcaster
    app.state.duty_service = DutySessionService(store, broadcaster)
    app.state.verification_service = VerificationService(store, lookup_client, broadcaster)

    logger.info(
        "All services initialized successfully",
        store=store.name,
        roblox_auth=settings.has_roblox_auth(),
    )

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await lookup_client.close()
    except Exception as e:
        logger.error("Error closing Roblox client", error=str(e))
        shutdown_errors.append(f"Roblox client: {e}")

    # Store last (may have active connections)
    try:
        await store.close()
    except Exception as e:
        logger.error("Error closing session store", error=str(e))
        shutdown_errors.append(f"Store: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="DutyWatch",
    description="Duty time tracking and Roblox identity verification",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
register_error_handlers(app)

app.include_router(health.router)
app.include_router(duty.router)
app.include_router(verification.router)
app.include_router(updates.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
        request_id=getattr(request.state, "request_id", None),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
