"""Error taxonomy for the orchestration core."""
from __future__ import annotations

from typing import Optional


class SwarmChatError(RuntimeError):
    """Base class for orchestration failures."""


class GenerationFailure(SwarmChatError):
    """Raised when a specialist's generation call fails."""

    def __init__(self, agent_id: str, reason: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Agent '{agent_id}' failed to respond: {reason}")
        self.agent_id = agent_id
        self.reason = reason
        self.__cause__ = cause


class GenerationTimeout(GenerationFailure):
    """Raised when a generation call exceeds the configured timeout."""


class DecisionParseFailure(SwarmChatError):
    """Supervisor output was not a valid decision. Always recovered internally."""


class NoAvailableAgent(SwarmChatError):
    """Raised when a dispatch is requested against an empty roster."""


class UnknownSession(SwarmChatError):
    """Raised when a session has no live orchestrator."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"No active orchestrator for session '{session_id}'")
        self.session_id = session_id

