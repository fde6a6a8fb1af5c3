"""In-memory publish/subscribe fan-out keyed by session id.

Delivery is best effort: each subscriber owns a bounded queue and an event
that does not fit is dropped for that subscriber only. Observers that miss
events re-fetch the full session state.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from .models import SessionEvent

logger = logging.getLogger(__name__)


class Broadcaster:
    """Topic-per-session broadcaster. Safe within a single asyncio event loop."""

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue[SessionEvent]]] = defaultdict(set)

    def subscribe(self, session_id: str) -> asyncio.Queue[SessionEvent]:
        queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[session_id].add(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue[SessionEvent]) -> None:
        queues = self._subscribers.get(session_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            self._subscribers.pop(session_id, None)

    def publish(self, session_id: str, event: SessionEvent) -> int:
        """Deliver event to current subscribers, returning how many received it."""
        delivered = 0
        for queue in list(self._subscribers.get(session_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(
                    "Dropped %s for a slow subscriber of session %s",
                    event.kind.value,
                    session_id,
                )
                continue
            delivered += 1
        return delivered

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))
