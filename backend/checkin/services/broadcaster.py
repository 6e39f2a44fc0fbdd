"""
In-memory pub/sub for queue display events.

Every call, recall or insert on a channel is broadcast to the displays
subscribed to that channel's activity. Slow subscribers drop events
instead of blocking the caller; a display only needs the latest
`ping_id` to know something new happened.
"""

import uuid

from anyio import WouldBlock, create_memory_object_stream
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from checkin.utils.logger import logger

MAX_BUFFER_SIZE = 10


class ChannelBroadcaster:
    def __init__(self, max_buffer_size: int = MAX_BUFFER_SIZE):
        self.max_buffer_size = max_buffer_size
        # activity_id -> list of (send_stream, receive_stream)
        self._subscribers: dict[
            uuid.UUID, list[tuple[MemoryObjectSendStream[dict], MemoryObjectReceiveStream[dict]]]
        ] = {}

    def subscriber_count(self, activity_id: uuid.UUID) -> int:
        return len(self._subscribers.get(activity_id, []))

    async def subscribe(self, activity_id: uuid.UUID) -> MemoryObjectReceiveStream[dict]:
        send_stream, receive_stream = create_memory_object_stream[dict](
            max_buffer_size=self.max_buffer_size
        )
        self._subscribers.setdefault(activity_id, []).append((send_stream, receive_stream))
        logger.debug(
            f"Display subscribed to activity {activity_id} "
            f"(total: {self.subscriber_count(activity_id)})"
        )
        return receive_stream

    async def broadcast(self, activity_id: uuid.UUID, event: dict) -> int:
        """Deliver to every subscriber of the activity; returns how many received it."""
        delivered = 0
        for send_stream, _ in self._subscribers.get(activity_id, []):
            try:
                send_stream.send_nowait(event)
                delivered += 1
            except WouldBlock:
                logger.warning(f"Display stream full for activity {activity_id}, dropping event")
        logger.debug(f"Broadcast {event.get('event')} to activity {activity_id}: delivered={delivered}")
        return delivered

    async def unsubscribe(self, activity_id: uuid.UUID, stream: MemoryObjectReceiveStream[dict]) -> None:
        subscribers = self._subscribers.get(activity_id)
        if not subscribers:
            return

        for i, (send_stream, receive_stream) in enumerate(subscribers):
            if receive_stream is stream:
                await send_stream.aclose()
                await receive_stream.aclose()
                subscribers.pop(i)
                break

        if not subscribers:
            del self._subscribers[activity_id]
