"""Registry mapping session ids to their live orchestrators."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from swarmchat.core.errors import UnknownSession
from swarmchat.core.logging import get_logger
from swarmchat.core.models import Task, TurnResult
from swarmchat.orchestration.orchestrator import Orchestrator

logger = get_logger(name=__name__)

OrchestratorFactory = Callable[[str, Sequence[str]], Orchestrator]


@dataclass
class SessionHandle:
    orchestrator: Orchestrator
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_used = time.monotonic()


class SessionRegistry:
    """Injectable session map with per-session exclusivity and interrupt control.

    The host application owns the lifecycle: it decides when to call
    ``evict_idle`` or ``remove``. Creation never happens implicitly outside
    ``get_or_create``.
    """

    def __init__(
        self,
        factory: OrchestratorFactory,
        *,
        ttl_seconds: Optional[float] = 30 * 60,
        max_sessions: Optional[int] = 100,
    ) -> None:
        self._factory = factory
        self._ttl = ttl_seconds
        self._max_sessions = max_sessions
        self._handles: Dict[str, SessionHandle] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def orchestrators(self) -> Iterator[Orchestrator]:
        return (handle.orchestrator for handle in list(self._handles.values()))

    def get_or_create(self, session_id: str, participant_ids: Iterable[str] = ()) -> Orchestrator:
        """Return the session's orchestrator, creating it on first use.

        Participant ids passed on later calls are merged into the existing set.
        """
        participant_ids = list(participant_ids)
        handle = self._handles.get(session_id)
        if handle is not None:
            handle.touch()
            added = handle.orchestrator.add_participants(participant_ids)
            if added:
                logger.info("session_participants_merged", session_id=session_id, added=added)
            return handle.orchestrator

        if self._max_sessions is not None and len(self._handles) >= self._max_sessions:
            self._force_cleanup()

        orchestrator = self._factory(session_id, participant_ids)
        self._handles[session_id] = SessionHandle(orchestrator)
        logger.info(
            "session_created",
            session_id=session_id,
            participants=list(orchestrator.state.participants),
            total_sessions=len(self._handles),
        )
        return orchestrator

    def get(self, session_id: str) -> Orchestrator:
        handle = self._handles.get(session_id)
        if handle is None:
            raise UnknownSession(session_id)
        return handle.orchestrator

    async def dispatch(
        self,
        session_id: str,
        user_message: str,
        confirmed_intent: Optional[str] = None,
        *,
        participant_ids: Iterable[str] = (),
        tasks: Sequence[Task] = (),
        stream_id: Optional[str] = None,
    ) -> TurnResult:
        """Run one turn for the session; concurrent calls for a session run one at a time."""
        orchestrator = self.get_or_create(session_id, participant_ids)
        return await orchestrator.process_message(user_message, confirmed_intent, tasks, stream_id=stream_id)

    def interrupt(self, session_id: str) -> bool:
        handle = self._handles.get(session_id)
        if handle is None:
            return False
        handle.orchestrator.interrupt()
        logger.info("session_interrupted", session_id=session_id)
        return True

    def resume(self, session_id: str) -> bool:
        handle = self._handles.get(session_id)
        if handle is None:
            return False
        resumed = handle.orchestrator.resume()
        if resumed:
            logger.info("session_resumed", session_id=session_id)
        return resumed

    def remove(self, session_id: str) -> bool:
        handle = self._handles.pop(session_id, None)
        if handle is None:
            return False
        logger.info("session_removed", session_id=session_id, remaining=len(self._handles))
        return True

    def evict_idle(self, now: Optional[float] = None) -> List[str]:
        """Drop sessions idle for longer than the TTL, skipping ones mid-turn."""
        if self._ttl is None:
            return []
        now = time.monotonic() if now is None else now
        expired = [
            session_id
            for session_id, handle in self._handles.items()
            if now - handle.last_used > self._ttl and not handle.orchestrator.lock.locked()
        ]
        for session_id in expired:
            self._handles.pop(session_id, None)
        if expired:
            logger.info("sessions_evicted", expired=expired, remaining=len(self._handles))
        return expired

    def _force_cleanup(self) -> None:
        # Drop the least recently used fifth of idle sessions.
        idle = sorted(
            (item for item in self._handles.items() if not item[1].orchestrator.lock.locked()),
            key=lambda item: item[1].last_used,
        )
        to_remove = max(1, len(self._handles) // 5)
        removed = [session_id for session_id, _ in idle[:to_remove]]
        for session_id in removed:
            self._handles.pop(session_id, None)
        logger.warning("session_limit_reached", removed=removed, remaining=len(self._handles))

    def stats(self) -> dict:
        now = time.monotonic()
        ages = [now - handle.created_at for handle in self._handles.values()]
        return {
            "total_sessions": len(self._handles),
            "average_age": sum(ages) / len(ages) if ages else 0.0,
            "oldest_session": max(ages, default=0.0),
            "newest_session": min(ages, default=0.0),
            "interrupted_sessions": sum(1 for handle in self._handles.values() if handle.orchestrator.interrupted),
        }

    async def shutdown(self) -> None:
        """Flush pending persistence writes and clear every session."""
        await asyncio.gather(
            *(handle.orchestrator.drain() for handle in self._handles.values()),
            return_exceptions=True,
        )
        count = len(self._handles)
        self._handles.clear()
        logger.info("registry_shutdown", cleared_sessions=count)
