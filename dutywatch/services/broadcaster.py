"""
Fan-out of UpdateEvents to connected dashboard observers.

Delivery is fire-and-forget and at-most-once: each subscriber has a bounded
queue, a full queue drops the event, and subscribers only see events published
while they are subscribed.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.models.domain.events import UpdateEvent

logger = get_logger(__name__)


class UpdateBroadcaster:
    """In-process publisher used by both engines."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: set[asyncio.Queue[UpdateEvent]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: UpdateEvent) -> int:
        """
        Deliver `event` to every current subscriber without waiting.

        Returns:
            int: Number of subscribers the event was queued for
        """
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(
                    "Subscriber queue full, dropping event",
                    kind=event.kind,
                    subject_id=event.subject_id,
                )

        logger.debug(
            "Event published",
            kind=event.kind,
            subject_id=event.subject_id,
            scope_id=event.scope_id,
            delivered=delivered,
        )
        return delivered

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[UpdateEvent]]:
        """
        Register an observer for the duration of the context.

        Usage:
            async with broadcaster.subscribe() as queue:
                event = await queue.get()
        """
        queue: asyncio.Queue[UpdateEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        logger.info("Observer subscribed", subscribers=len(self._subscribers))
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
            logger.info("Observer unsubscribed", subscribers=len(self._subscribers))
