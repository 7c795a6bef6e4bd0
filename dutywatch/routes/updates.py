"""
WebSocket push channel for dashboards.

On connect the client receives `initial_data` with the active sessions of its
scope, then one message per UpdateEvent for as long as it stays connected.
"""

import asyncio

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from dutywatch.dependencies import get_broadcaster, get_duty_service, resolve_scope
from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.models.api.duty_response import DutySessionResponse
from dutywatch.services.broadcaster import UpdateBroadcaster
from dutywatch.services.duty_session_service import DutySessionService

logger = get_logger(__name__)

router = APIRouter(tags=["updates"])


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Consume client frames until the socket closes; clients only listen."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws")
async def updates_socket(
    websocket: WebSocket,
    scope_id: str | None = None,
    broadcaster: UpdateBroadcaster = Depends(get_broadcaster),
    service: DutySessionService = Depends(get_duty_service),
):
    scope_id = resolve_scope(scope_id)
    await websocket.accept()

    async with broadcaster.subscribe() as queue:
        views = await service.list_active(scope_id)
        await websocket.send_json(
            {
                "type": "initial_data",
                "scope_id": scope_id,
                "active_sessions": [
                    DutySessionResponse.from_view(view).model_dump(mode="json") for view in views
                ],
            }
        )

        closed = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while True:
                next_event = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait(
                    {next_event, closed}, return_when=asyncio.FIRST_COMPLETED
                )
                if closed in done:
                    next_event.cancel()
                    error = closed.exception()
                    if error is not None:
                        logger.warning(
                            "Dashboard socket receive failed", scope_id=scope_id, error=str(error)
                        )
                    break

                event = next_event.result()
                if event.scope_id != scope_id:
                    continue
                await websocket.send_json(event.to_message())
        except WebSocketDisconnect:
            pass
        finally:
            closed.cancel()

    logger.info("Dashboard disconnected", scope_id=scope_id)
