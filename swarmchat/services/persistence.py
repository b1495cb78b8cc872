"""Persistence port used by orchestrators, with an in-memory implementation."""
from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Dict, List, Protocol, Sequence

from swarmchat.core.models import ChatMessage, TurnResult


class TranscriptStore(Protocol):
    """External store supplying turn indexes and accepting finished turns."""

    async def next_turn_index(self, session_id: str) -> int:
        ...

    async def save_turn(self, session_id: str, result: TurnResult, messages: Sequence[ChatMessage]) -> None:
        ...


class InMemoryTranscriptStore:
    """Process-local store; suitable for tests, demos and single-node deployments."""

    def __init__(self) -> None:
        self._results: Dict[str, List[TurnResult]] = defaultdict(list)
        self._messages: Dict[str, List[ChatMessage]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def next_turn_index(self, session_id: str) -> int:
        async with self._lock:
            results = self._results.get(session_id)
            latest = max((result.turn_index for result in results), default=0) if results else 0
        return latest + 1

    async def save_turn(self, session_id: str, result: TurnResult, messages: Sequence[ChatMessage]) -> None:
        async with self._lock:
            self._results[session_id].append(result)
            self._messages[session_id].extend(messages)

    def results(self, session_id: str) -> List[TurnResult]:
        return list(self._results.get(session_id, ()))

    def messages(self, session_id: str) -> List[ChatMessage]:
        return list(self._messages.get(session_id, ()))
