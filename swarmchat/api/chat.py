"""Chat endpoint streaming agent replies for one turn as NDJSON."""
from __future__ import annotations

import asyncio
import json
import uuid
from typing import AsyncIterator, Optional, Set

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from swarmchat.core.errors import NoAvailableAgent
from swarmchat.core.logging import get_logger
from swarmchat.core.stream_bus import StreamBus, StreamChunk
from swarmchat.orchestration.hub import AgentHub
from swarmchat.runtime import get_hub, get_stream_bus

router = APIRouter(prefix="/chat", tags=["chat"])

logger = get_logger(name=__name__)


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, description="User message for this turn")
    confirmed_intent: Optional[str] = None
    timeout: float = Field(default=120.0, gt=0, description="Seconds to wait for the next chunk")


def _line(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False) + "\n"


def _chunk_line(chunk: StreamChunk) -> str:
    return _line(
        {
            "type": "chunk",
            "agent_id": chunk.agent_id,
            "agent_name": chunk.agent_name,
            "text": chunk.text,
            "turn_index": chunk.turn_index,
        }
    )


# Turns keep running after their stream closes; hold them until they finish.
_running_turns: Set[asyncio.Task] = set()


def _track_turn(task: asyncio.Task) -> None:
    _running_turns.add(task)
    task.add_done_callback(_turn_finished)


def _turn_finished(task: asyncio.Task) -> None:
    _running_turns.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None and not isinstance(error, NoAvailableAgent):
        logger.error("chat_turn_failed", error=str(error) or type(error).__name__, exc_info=error)


async def stream_turn(
    hub: AgentHub,
    bus: StreamBus,
    session_id: str,
    request: ChatRequest,
) -> AsyncIterator[str]:
    """Run one turn while relaying its chunks; ends with the turn result line.

    Only chunks tagged with this dispatch's stream id are relayed, so
    concurrent streams on one session never see each other's replies.
    """
    stream_id = uuid.uuid4().hex
    async with bus.deliver(session_id) as inbox:
        turn = asyncio.create_task(
            hub.process_message(session_id, request.message, request.confirmed_intent, stream_id=stream_id)
        )
        _track_turn(turn)
        try:
            while True:
                getter = asyncio.create_task(inbox.get())
                done, _ = await asyncio.wait(
                    {getter, turn},
                    timeout=request.timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if getter not in done:
                    getter.cancel()
                if not done:
                    yield _line({"type": "error", "detail": "Timed out waiting for agents."})
                    return
                if getter in done:
                    chunk = getter.result()
                    if chunk.stream_id != stream_id:
                        continue
                    if chunk.done:
                        break
                    yield _chunk_line(chunk)
                    continue
                # The turn finished first; flush whatever is still queued.
                while not inbox.empty():
                    chunk = inbox.get_nowait()
                    if chunk.stream_id != stream_id:
                        continue
                    if chunk.done:
                        break
                    yield _chunk_line(chunk)
                break

            try:
                result = await turn
            except NoAvailableAgent as exc:
                yield _line({"type": "error", "detail": str(exc)})
                return
            yield _line(
                {
                    "type": "result",
                    "turn_index": result.turn_index,
                    "summary": result.summary,
                    "should_clarify": result.should_clarify,
                    "clarification_question": result.clarification_question,
                    "is_cancelled": result.is_cancelled,
                    "cost_usd": result.cost_usd,
                }
            )
        finally:
            if not turn.done():
                # The client went away; let the turn finish so session state stays consistent.
                logger.info("chat_stream_detached", session_id=session_id)


@router.post("/{session_id}/stream")
async def chat_stream(
    session_id: str,
    request: ChatRequest,
    hub: AgentHub = Depends(get_hub),
    bus: StreamBus = Depends(get_stream_bus),
) -> StreamingResponse:
    """Dispatch a message and stream every agent's reply chunks as they arrive."""
    return StreamingResponse(
        stream_turn(hub, bus, session_id, request),
        media_type="application/x-ndjson",
    )
