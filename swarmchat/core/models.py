"""Core data models shared across orchestrator components."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def short_id() -> str:
    return uuid.uuid4().hex[:8]


class OrchestrationMode(str, Enum):
    """Policy governing how many specialists respond per turn and in what order."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    DYNAMIC = "dynamic"
    ROUND_ROBIN = "round_robin"


class TurnPhase(str, Enum):
    """Lifecycle states of a single dispatch cycle."""

    IDLE = "idle"
    DISPATCHING = "dispatching"
    CLARIFYING = "clarifying"
    EXECUTING = "executing"
    COMPLETED = "completed"


class MessageRole(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class TurnEventType(str, Enum):
    SYSTEM = "system"
    DECISION = "decision"
    ASK_USER = "ask_user"
    AGENT_START = "agent_start"
    AGENT_REPLY = "agent_reply"
    AGENT_FAILED = "agent_failed"
    FLOW_CANCELLED = "flow_cancelled"
    SUMMARY = "summary"


@dataclass(frozen=True, slots=True)
class AgentDescriptor:
    """Immutable registration record for a specialist agent."""

    id: str
    name: str
    role: str
    description: str = ""
    capabilities: Tuple[str, ...] = ()
    temperature: float = 0.7
    max_tokens: int = 2000
    system_prompt: str = "You are a helpful specialist in a multi-agent group chat."
    model: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """A single role-tagged utterance in a session's conversation log."""

    role: MessageRole
    content: str
    sender_id: str = ""
    sender_name: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    mentions: Tuple[str, ...] = ()

    @classmethod
    def user(cls, content: str, *, sender_id: str = "user", sender_name: str = "User",
             mentions: Tuple[str, ...] = ()) -> ChatMessage:
        return cls(MessageRole.USER, content, sender_id, sender_name, mentions=mentions)

    @classmethod
    def agent(cls, descriptor: AgentDescriptor, content: str) -> ChatMessage:
        return cls(MessageRole.AGENT, content, descriptor.id, descriptor.name)

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(MessageRole.SYSTEM, content, "system", "System")


@dataclass(slots=True)
class OrchestrationDecision:
    """Supervisor verdict on who should speak next."""

    next_agent_id: str
    reasoning: str
    should_continue: bool = False
    suggested_follow_up: Optional[str] = None
    clarification_question: Optional[str] = None


@dataclass(slots=True)
class Task:
    """Unit of planned work; produced upstream and threaded through untouched."""

    id: str
    title: str
    description: str
    assigned_to: str
    status: TaskStatus = TaskStatus.PENDING
    priority: str = "medium"


@dataclass(slots=True)
class Result:
    task_id: Optional[str]
    agent_id: str
    content: str


@dataclass(slots=True)
class TurnEvent:
    """Diagnostic or progress entry recorded during a dispatch cycle."""

    type: TurnEventType
    content: str = ""
    agent_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=short_id)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class TurnResult:
    """Externally visible outcome of one dispatch cycle."""

    session_id: str
    turn_index: int
    should_clarify: bool = False
    clarification_question: Optional[str] = None
    summary: Optional[str] = None
    events: List[TurnEvent] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    results: List[Result] = field(default_factory=list)
    cost_usd: float = 0.0
    is_cancelled: bool = False

    def record(self, event_type: TurnEventType, content: str = "", *,
               agent_id: Optional[str] = None, **metadata: Any) -> TurnEvent:
        event = TurnEvent(type=event_type, content=content, agent_id=agent_id, metadata=metadata)
        self.events.append(event)
        return event
