"""Lightweight in-memory bus fanning out streamed reply chunks per session."""
from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Set


@dataclass(slots=True)
class StreamChunk:
    """Piece of an agent reply, or the end-of-turn marker when ``done`` is set.

    ``stream_id`` names the dispatch that produced the chunk, so several
    listeners on one session can each follow their own turn.
    """

    session_id: str
    agent_id: str = ""
    agent_name: str = ""
    text: str = ""
    turn_index: int = 0
    stream_id: Optional[str] = None
    done: bool = False


class StreamBus:
    """Async hub delivering reply chunks to every listener of a session."""

    def __init__(self) -> None:
        self._subscribers: Dict[str, Set[asyncio.Queue[StreamChunk]]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def register(self, session_id: str) -> asyncio.Queue[StreamChunk]:
        """Create a mailbox receiving the session's chunks."""
        queue: asyncio.Queue[StreamChunk] = asyncio.Queue()
        async with self._lock:
            self._subscribers[session_id].add(queue)
        return queue

    async def unregister(self, session_id: str, queue: asyncio.Queue[StreamChunk]) -> None:
        """Remove the mailbox to stop further deliveries."""
        async with self._lock:
            listeners = self._subscribers.get(session_id)
            if listeners is None:
                return
            listeners.discard(queue)
            if not listeners:
                self._subscribers.pop(session_id, None)

    def publish(self, chunk: StreamChunk) -> None:
        """Deliver a chunk to all current listeners of its session."""
        for queue in list(self._subscribers.get(chunk.session_id, ())):
            queue.put_nowait(chunk)

    def listener_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    @asynccontextmanager
    async def deliver(self, session_id: str) -> AsyncIterator[asyncio.Queue[StreamChunk]]:
        """Context manager yielding a mailbox for the session's chunks."""
        queue = await self.register(session_id)
        try:
            yield queue
        finally:
            await self.unregister(session_id, queue)
