"""Per-session orchestrator applying a dispatch mode to each user turn."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from swarmchat.agents.supervisor import Supervisor
from swarmchat.config import OrchestrationSettings
from swarmchat.core.cancellation import CancellationToken
from swarmchat.core.errors import GenerationFailure, NoAvailableAgent
from swarmchat.core.logging import get_logger
from swarmchat.core.mentions import resolve_mentions
from swarmchat.core.models import (
    AgentDescriptor,
    ChatMessage,
    OrchestrationDecision,
    OrchestrationMode,
    Result,
    Task,
    TurnEventType,
    TurnPhase,
    TurnResult,
)
from swarmchat.core.stream_bus import StreamBus, StreamChunk
from swarmchat.core.transcript import render_markdown
from swarmchat.core.turn_state import TurnState
from swarmchat.orchestration.catalog import AgentCatalog
from swarmchat.services.generation import Generation
from swarmchat.services.persistence import TranscriptStore

logger = get_logger(name=__name__)

FAILED_TURN_NOTICE = "Sorry, none of the agents could respond this time. Please try again."


@dataclass
class _TurnRun:
    """Bookkeeping for one dispatch cycle."""

    result: TurnResult
    planned: int = 0
    replies: List[Tuple[AgentDescriptor, str]] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    cancelled: bool = False
    summary: Optional[str] = None
    stream_id: Optional[str] = None


class Orchestrator:
    """Owns one session's turn state and runs the dispatch state machine.

    ``process_message`` calls are serialized by the orchestrator's own lock, so
    the message log and turn index are only ever mutated by one turn at a time.
    """

    def __init__(
        self,
        session_id: str,
        *,
        catalog: AgentCatalog,
        supervisor: Supervisor,
        participants: Iterable[str] = (),
        mode: Optional[OrchestrationMode] = None,
        settings: Optional[OrchestrationSettings] = None,
        store: Optional[TranscriptStore] = None,
        bus: Optional[StreamBus] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        self.settings = settings or OrchestrationSettings()
        self.state = TurnState(session_id, participants=participants, metadata=metadata)
        self.mode = mode or self.settings.mode
        self.phase = TurnPhase.IDLE
        self.cancel_token = CancellationToken()
        self.pending_clarification: Optional[str] = None
        self.lock = asyncio.Lock()
        self._catalog = catalog
        self._supervisor = supervisor
        self._store = store
        self._bus = bus
        self._cursor = 0
        self._background: Set[asyncio.Task] = set()
        self._dispatchers: Dict[OrchestrationMode, Callable[..., Awaitable[None]]] = {
            OrchestrationMode.SEQUENTIAL: self._dispatch_sequential,
            OrchestrationMode.PARALLEL: self._dispatch_parallel,
            OrchestrationMode.DYNAMIC: self._dispatch_dynamic,
            OrchestrationMode.ROUND_ROBIN: self._dispatch_round_robin,
        }

    @property
    def session_id(self) -> str:
        return self.state.session_id

    @property
    def interrupted(self) -> bool:
        return self.cancel_token.cancelled

    def roster(self) -> List[AgentDescriptor]:
        """Registered descriptors of the session's participants, in registration order."""
        return self._catalog.roster(self.state.participants)

    def add_participants(self, agent_ids: Iterable[str]) -> List[str]:
        return self.state.add_participants(agent_ids)

    def remove_participant(self, agent_id: str) -> bool:
        return self.state.remove_participant(agent_id)

    def interrupt(self) -> None:
        self.cancel_token.cancel()

    def resume(self) -> bool:
        return self.cancel_token.reset()

    def load_history(self, messages: Iterable[ChatMessage]) -> int:
        return self.state.seed(messages)

    def export_transcript(self) -> str:
        names = [agent.name for agent in self.roster()]
        return render_markdown(self.session_id, names, self.state.messages)

    async def process_message(
        self,
        user_message: str,
        confirmed_intent: Optional[str] = None,
        tasks: Sequence[Task] = (),
        *,
        stream_id: Optional[str] = None,
    ) -> TurnResult:
        """Run one turn. ``stream_id`` tags the chunks published for this dispatch."""
        async with self.lock:
            return await self._run_turn(user_message, confirmed_intent, tasks, stream_id)

    async def _run_turn(
        self,
        user_message: str,
        confirmed_intent: Optional[str],
        tasks: Sequence[Task],
        stream_id: Optional[str] = None,
    ) -> TurnResult:
        roster = self.roster()
        if not roster:
            raise NoAvailableAgent(f"Session '{self.session_id}' has no registered participants")

        self._transition(TurnPhase.DISPATCHING)
        turn_index = self.state.advance_turn(await self._next_turn_index())
        log_start = len(self.state)
        mentions = resolve_mentions(user_message, roster)
        self.state.append(ChatMessage.user(user_message, mentions=tuple(mentions)))

        run = _TurnRun(
            result=TurnResult(session_id=self.session_id, turn_index=turn_index, tasks=list(tasks)),
            stream_id=stream_id,
        )
        run.result.record(
            TurnEventType.SYSTEM,
            "Orchestrator started",
            mode=self.mode.value,
            mentions=mentions,
        )
        if confirmed_intent:
            self.pending_clarification = None
            run.result.record(TurnEventType.SYSTEM, f"Confirmed intent: {confirmed_intent}")

        if not self._check_cancelled(run):
            await self._dispatchers[self.mode](run, user_message, mentions, roster, confirmed_intent)
        # An interrupt that landed while the last agents were running still cancels the turn.
        if not self._check_cancelled(run) and len(run.replies) > 1:
            await self._synthesize(run, user_message)

        return self._finish(run, log_start)

    async def _dispatch_sequential(
        self,
        run: _TurnRun,
        user_message: str,
        mentions: List[str],
        roster: List[AgentDescriptor],
        confirmed_intent: Optional[str],
    ) -> None:
        if mentions:
            await self._run_chain(run, user_message, mentions)
            return
        decision = await self._decide(run, user_message, roster, confirmed_intent)
        await self._run_chain(run, user_message, [decision.next_agent_id])

    async def _dispatch_parallel(
        self,
        run: _TurnRun,
        user_message: str,
        mentions: List[str],
        roster: List[AgentDescriptor],
        confirmed_intent: Optional[str],
    ) -> None:
        if not mentions:
            await self._dispatch_sequential(run, user_message, mentions, roster, confirmed_intent)
            return

        run.planned += len(mentions)
        snapshot = self.state.trimmed(self.settings.history_limit)
        outcomes = await asyncio.gather(
            *(self._invoke(run, agent_id, user_message, snapshot) for agent_id in mentions),
            return_exceptions=True,
        )
        # Replies land in mention order regardless of completion order.
        for agent_id, outcome in zip(mentions, outcomes):
            if isinstance(outcome, BaseException):
                self._record_failure(run, agent_id, outcome)
            elif outcome is not None:
                self._accept(run, agent_id, outcome)

    async def _dispatch_dynamic(
        self,
        run: _TurnRun,
        user_message: str,
        mentions: List[str],
        roster: List[AgentDescriptor],
        confirmed_intent: Optional[str],
    ) -> None:
        if mentions:
            await self._run_chain(run, user_message, mentions)
            return

        decision = await self._decide(
            run,
            user_message,
            roster,
            confirmed_intent,
            allow_clarification=confirmed_intent is None,
        )
        if decision.clarification_question:
            self._transition(TurnPhase.CLARIFYING)
            self.pending_clarification = decision.clarification_question
            run.result.should_clarify = True
            run.result.clarification_question = decision.clarification_question
            run.result.record(TurnEventType.ASK_USER, decision.clarification_question)
            return

        await self._run_chain(run, user_message, [decision.next_agent_id])
        if not decision.should_continue or self._check_cancelled(run):
            return

        remaining = [agent for agent in roster if agent.id != decision.next_agent_id]
        if not remaining:
            return
        follow_up = await self._decide(
            run,
            decision.suggested_follow_up or user_message,
            remaining,
            confirmed_intent,
        )
        await self._run_chain(run, user_message, [follow_up.next_agent_id])

    async def _dispatch_round_robin(
        self,
        run: _TurnRun,
        user_message: str,
        mentions: List[str],
        roster: List[AgentDescriptor],
        confirmed_intent: Optional[str],
    ) -> None:
        agent = roster[self._cursor % len(roster)]
        self._cursor = (self._cursor + 1) % len(roster)
        run.result.record(TurnEventType.DECISION, "round robin turn", agent_id=agent.id)
        await self._run_chain(run, user_message, [agent.id])

    async def _decide(
        self,
        run: _TurnRun,
        user_input: str,
        available: List[AgentDescriptor],
        confirmed_intent: Optional[str],
        *,
        allow_clarification: bool = False,
    ) -> OrchestrationDecision:
        decision = await self._supervisor.decide_next(
            user_input,
            self.state,
            available,
            (),
            confirmed_intent=confirmed_intent,
            allow_clarification=allow_clarification,
        )
        run.result.record(
            TurnEventType.DECISION,
            decision.reasoning,
            agent_id=decision.next_agent_id,
            should_continue=decision.should_continue,
        )
        return decision

    async def _run_chain(self, run: _TurnRun, user_message: str, agent_ids: List[str]) -> None:
        """Invoke agents one after another, each seeing the replies before it."""
        run.planned += len(agent_ids)
        for agent_id in agent_ids:
            generation = await self._invoke(run, agent_id, user_message)
            if run.cancelled:
                break
            if generation is not None:
                self._accept(run, agent_id, generation)

    async def _invoke(
        self,
        run: _TurnRun,
        agent_id: str,
        user_message: str,
        history: Optional[Tuple[ChatMessage, ...]] = None,
    ) -> Optional[Generation]:
        if self._check_cancelled(run):
            return None
        self._transition(TurnPhase.EXECUTING)
        if history is None:
            history = self.state.trimmed(self.settings.history_limit)

        run.result.record(TurnEventType.AGENT_START, agent_id=agent_id)
        attempts = max(self.settings.generation_retries, 0) + 1
        error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            if attempt > 1 and self._check_cancelled(run):
                return None
            try:
                specialist = self._catalog.specialist(agent_id)
                generation = await specialist.invoke(
                    user_message,
                    history,
                    on_chunk=self._chunk_publisher(specialist.descriptor, run),
                    cancel_token=self.cancel_token,
                )
            except (GenerationFailure, KeyError) as exc:
                error = exc
                logger.warning(
                    "agent_invocation_failed",
                    session_id=self.session_id,
                    agent_id=agent_id,
                    attempt=attempt,
                    error=str(exc),
                )
                continue
            if generation.interrupted:
                run.cancelled = True
                return None
            return generation

        self._record_failure(run, agent_id, error)
        return None

    def _accept(self, run: _TurnRun, agent_id: str, generation: Generation) -> None:
        descriptor = self._catalog.get_agent(agent_id)
        if descriptor is None:
            self._record_failure(run, agent_id, KeyError(agent_id))
            return
        self.state.append(ChatMessage.agent(descriptor, generation.text))
        run.replies.append((descriptor, generation.text))
        run.result.results.append(
            Result(task_id=self._task_for(run.result.tasks, agent_id), agent_id=agent_id, content=generation.text)
        )
        run.result.cost_usd += generation.cost_usd
        run.result.record(
            TurnEventType.AGENT_REPLY,
            generation.text[:200],
            agent_id=agent_id,
            cost_usd=generation.cost_usd,
        )

    def _record_failure(self, run: _TurnRun, agent_id: str, error: Optional[BaseException]) -> None:
        run.failed.append(agent_id)
        run.result.record(
            TurnEventType.AGENT_FAILED,
            str(error) if error is not None else "unknown error",
            agent_id=agent_id,
        )

    def _check_cancelled(self, run: _TurnRun) -> bool:
        if self.cancel_token.cancelled:
            run.cancelled = True
        return run.cancelled

    def _finish(self, run: _TurnRun, log_start: int) -> TurnResult:
        result = run.result
        if run.cancelled:
            result.is_cancelled = True
            planned = max(run.planned, len(run.replies))
            result.summary = f"The turn was cancelled. Completed {len(run.replies)} of {planned} planned responses."
            result.record(TurnEventType.FLOW_CANCELLED, result.summary)
        elif result.should_clarify:
            pass
        elif run.replies:
            result.summary = run.summary or self._compose_summary(run.replies)
            result.record(
                TurnEventType.SUMMARY,
                result.summary[:200],
                synthesized=run.summary is not None,
                task_count=len(result.tasks),
                agent_count=len({descriptor.id for descriptor, _ in run.replies}),
            )
        else:
            result.cost_usd = 0.0
            result.record(TurnEventType.SYSTEM, FAILED_TURN_NOTICE, failed_agents=list(run.failed))

        self._transition(TurnPhase.COMPLETED)
        self._persist(result, self.state.messages[log_start:])
        if self._bus is not None:
            self._bus.publish(
                StreamChunk(
                    session_id=self.session_id,
                    turn_index=result.turn_index,
                    stream_id=run.stream_id,
                    done=True,
                )
            )
        logger.info(
            "turn_completed",
            session_id=self.session_id,
            turn_index=result.turn_index,
            mode=self.mode.value,
            replies=len(run.replies),
            failed=len(run.failed),
            cancelled=result.is_cancelled,
            cost_usd=result.cost_usd,
        )
        return result

    async def _synthesize(self, run: _TurnRun, user_message: str) -> None:
        try:
            generation = await self._supervisor.synthesize(user_message, run.replies, run.result.tasks)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "summary_synthesis_failed",
                session_id=self.session_id,
                turn_index=run.result.turn_index,
                error=str(exc) or type(exc).__name__,
            )
            return
        run.result.cost_usd += generation.cost_usd
        if generation.text.strip():
            run.summary = generation.text

    @staticmethod
    def _compose_summary(replies: List[Tuple[AgentDescriptor, str]]) -> str:
        if len(replies) == 1:
            return replies[0][1]
        return "\n\n".join(f"**{descriptor.name}:** {content}" for descriptor, content in replies)

    @staticmethod
    def _task_for(tasks: List[Task], agent_id: str) -> Optional[str]:
        for task in tasks:
            if task.assigned_to == agent_id:
                return task.id
        return None

    def _chunk_publisher(self, descriptor: AgentDescriptor, run: _TurnRun) -> Optional[Callable[[str], None]]:
        bus = self._bus
        if bus is None or not bus.listener_count(self.session_id):
            return None

        def publish(text: str) -> None:
            bus.publish(
                StreamChunk(
                    session_id=self.session_id,
                    agent_id=descriptor.id,
                    agent_name=descriptor.name,
                    text=text,
                    turn_index=run.result.turn_index,
                    stream_id=run.stream_id,
                )
            )

        return publish

    def _transition(self, phase: TurnPhase) -> None:
        if self.phase is not phase:
            logger.debug("turn_phase", session_id=self.session_id, previous=self.phase.value, phase=phase.value)
            self.phase = phase

    async def _next_turn_index(self) -> int:
        if self._store is None:
            return self.state.turn_index + 1
        try:
            return await self._store.next_turn_index(self.session_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("turn_index_lookup_failed", session_id=self.session_id, error=str(exc))
            return 1

    def _persist(self, result: TurnResult, messages: Sequence[ChatMessage]) -> None:
        if self._store is None:
            return
        task = asyncio.create_task(self._save(result, list(messages)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _save(self, result: TurnResult, messages: List[ChatMessage]) -> None:
        try:
            await self._store.save_turn(self.session_id, result, messages)
        except Exception:  # noqa: BLE001
            logger.error("turn_save_failed", session_id=self.session_id, turn_index=result.turn_index, exc_info=True)

    async def drain(self) -> None:
        """Wait for pending persistence writes; used on shutdown and in tests."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
