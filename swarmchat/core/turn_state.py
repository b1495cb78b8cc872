"""Session-scoped conversation record shared by the orchestration components."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from swarmchat.core.models import ChatMessage


class TurnState:
    """Append-only message log plus participants and turn bookkeeping.

    Exactly one orchestrator owns a given instance; callers never see the
    underlying list, only tuple snapshots.
    """

    def __init__(
        self,
        session_id: str,
        *,
        participants: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.session_id = session_id
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.turn_index = 0
        self._messages: List[ChatMessage] = []
        self._participants: List[str] = []
        self.add_participants(participants or ())

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def participants(self) -> Tuple[str, ...]:
        return tuple(self._participants)

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def seed(self, messages: Iterable[ChatMessage]) -> int:
        """Load externally persisted history into an empty log."""
        if self._messages:
            raise ValueError(f"Session '{self.session_id}' already has history")
        self._messages.extend(messages)
        return len(self._messages)

    def advance_turn(self, candidate: int) -> int:
        """Move to the next turn, never going backwards or reusing an index."""
        self.turn_index = max(candidate, self.turn_index + 1)
        return self.turn_index

    def snapshot(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def recent(self, count: int) -> Tuple[ChatMessage, ...]:
        if count <= 0:
            return ()
        return tuple(self._messages[-count:])

    def trimmed(self, limit: int = 20) -> Tuple[ChatMessage, ...]:
        """Bound the log to ``limit`` entries, keeping the first message."""
        return trim_history(self._messages, limit)

    def add_participants(self, agent_ids: Iterable[str]) -> List[str]:
        added = []
        for agent_id in agent_ids:
            if agent_id not in self._participants:
                self._participants.append(agent_id)
                added.append(agent_id)
        return added

    def remove_participant(self, agent_id: str) -> bool:
        if agent_id not in self._participants:
            return False
        self._participants.remove(agent_id)
        return True


def trim_history(messages: Iterable[ChatMessage], limit: int) -> Tuple[ChatMessage, ...]:
    history = tuple(messages)
    if limit <= 0:
        return ()
    if len(history) <= limit:
        return history
    if limit == 1:
        return history[:1]
    # The opening message usually carries the session's framing context.
    return (history[0],) + history[-(limit - 1):]
