"""Session-scoped API routes for dispatching turns and controlling the flow."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from swarmchat.core.errors import NoAvailableAgent, UnknownSession
from swarmchat.core.models import (
    ChatMessage,
    MessageRole,
    OrchestrationMode,
    Task,
    TaskStatus,
    TurnResult,
)
from swarmchat.orchestration.hub import AgentHub
from swarmchat.runtime import get_hub

router = APIRouter(prefix="/sessions", tags=["sessions"])


class SessionInitRequest(BaseModel):
    participant_ids: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    mode: Optional[OrchestrationMode] = None


class SessionResponse(BaseModel):
    session_id: str
    participants: List[str]
    mode: OrchestrationMode
    turn_index: int
    interrupted: bool


class HistoryMessage(BaseModel):
    role: MessageRole
    content: str
    sender_id: str = ""
    sender_name: str = ""
    timestamp: Optional[datetime] = None

    def to_message(self) -> ChatMessage:
        extra = {"timestamp": self.timestamp} if self.timestamp else {}
        return ChatMessage(
            role=self.role,
            content=self.content,
            sender_id=self.sender_id,
            sender_name=self.sender_name,
            **extra,
        )


class HistoryRequest(BaseModel):
    messages: List[HistoryMessage]


class TaskPayload(BaseModel):
    id: str
    title: str
    description: str = ""
    assigned_to: str
    status: TaskStatus = TaskStatus.PENDING
    priority: str = "medium"


class DispatchRequest(BaseModel):
    message: str = Field(..., min_length=1, description="User message for this turn")
    confirmed_intent: Optional[str] = None
    tasks: List[TaskPayload] = Field(default_factory=list)


class EventPayload(BaseModel):
    id: str
    type: str
    timestamp: datetime
    agent_id: Optional[str] = None
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ResultPayload(BaseModel):
    task_id: Optional[str]
    agent_id: str
    content: str


class TurnResponse(BaseModel):
    session_id: str
    turn_index: int
    should_clarify: bool
    clarification_question: Optional[str]
    summary: Optional[str]
    events: List[EventPayload]
    tasks: List[TaskPayload]
    results: List[ResultPayload]
    cost_usd: float
    is_cancelled: bool

    @classmethod
    def from_result(cls, result: TurnResult) -> "TurnResponse":
        return cls(
            session_id=result.session_id,
            turn_index=result.turn_index,
            should_clarify=result.should_clarify,
            clarification_question=result.clarification_question,
            summary=result.summary,
            events=[
                EventPayload(
                    id=event.id,
                    type=event.type.value,
                    timestamp=event.timestamp,
                    agent_id=event.agent_id,
                    content=event.content,
                    metadata=event.metadata,
                )
                for event in result.events
            ],
            tasks=[
                TaskPayload(
                    id=task.id,
                    title=task.title,
                    description=task.description,
                    assigned_to=task.assigned_to,
                    status=task.status,
                    priority=task.priority,
                )
                for task in result.tasks
            ],
            results=[
                ResultPayload(task_id=item.task_id, agent_id=item.agent_id, content=item.content)
                for item in result.results
            ],
            cost_usd=result.cost_usd,
            is_cancelled=result.is_cancelled,
        )


class ControlRequest(BaseModel):
    action: Literal["cancel", "resume"]


class ControlResponse(BaseModel):
    ok: bool
    action: str


def _session_response(hub: AgentHub, session_id: str) -> SessionResponse:
    orchestrator = hub.sessions.get(session_id)
    return SessionResponse(
        session_id=session_id,
        participants=list(orchestrator.state.participants),
        mode=orchestrator.mode,
        turn_index=orchestrator.state.turn_index,
        interrupted=orchestrator.interrupted,
    )


@router.post("/{session_id}", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def init_session(
    session_id: str,
    request: SessionInitRequest,
    hub: AgentHub = Depends(get_hub),
) -> SessionResponse:
    """Open a session, or merge participants into an existing one."""
    hub.init_session(session_id, request.metadata, request.participant_ids, request.mode)
    return _session_response(hub, session_id)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, hub: AgentHub = Depends(get_hub)) -> SessionResponse:
    try:
        return _session_response(hub, session_id)
    except UnknownSession as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.post("/{session_id}/history", status_code=status.HTTP_202_ACCEPTED)
async def load_history(
    session_id: str,
    request: HistoryRequest,
    hub: AgentHub = Depends(get_hub),
) -> dict:
    try:
        count = hub.load_history(session_id, [message.to_message() for message in request.messages])
    except UnknownSession as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return {"loaded": count}


@router.post("/{session_id}/dispatch", response_model=TurnResponse)
async def dispatch(
    session_id: str,
    request: DispatchRequest,
    hub: AgentHub = Depends(get_hub),
) -> TurnResponse:
    tasks = [Task(**task.model_dump()) for task in request.tasks]
    try:
        result = await hub.process_message(session_id, request.message, request.confirmed_intent, tasks)
    except NoAvailableAgent as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return TurnResponse.from_result(result)


@router.post("/{session_id}/control", response_model=ControlResponse)
async def control(
    session_id: str,
    request: ControlRequest,
    hub: AgentHub = Depends(get_hub),
) -> ControlResponse:
    if session_id not in hub.sessions:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    if request.action == "cancel":
        ok = hub.interrupt_session(session_id)
    else:
        ok = hub.resume_session(session_id)
    return ControlResponse(ok=ok, action=request.action)


@router.get("/{session_id}/transcript", response_class=PlainTextResponse)
async def export_transcript(session_id: str, hub: AgentHub = Depends(get_hub)) -> PlainTextResponse:
    try:
        text = hub.export_transcript(session_id)
    except UnknownSession as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return PlainTextResponse(text, media_type="text/markdown")


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, hub: AgentHub = Depends(get_hub)) -> None:
    """Tear down the session's orchestrator."""
    hub.end_session(session_id)
