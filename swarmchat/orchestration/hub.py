"""Public entry point tying the agent catalog, supervisor and session registry together."""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from swarmchat.agents.supervisor import Supervisor
from swarmchat.config import OrchestrationSettings
from swarmchat.core.logging import get_logger
from swarmchat.core.models import AgentDescriptor, ChatMessage, OrchestrationMode, Task, TurnResult
from swarmchat.core.stream_bus import StreamBus
from swarmchat.orchestration.catalog import AgentCatalog
from swarmchat.orchestration.orchestrator import Orchestrator
from swarmchat.orchestration.registry import SessionRegistry
from swarmchat.services.generation import GenerationService
from swarmchat.services.persistence import TranscriptStore

logger = get_logger(name=__name__)


class AgentHub:
    """Register specialists, open sessions and run turns against them."""

    def __init__(
        self,
        generator: GenerationService,
        *,
        settings: Optional[OrchestrationSettings] = None,
        supervisor: Optional[Supervisor] = None,
        store: Optional[TranscriptStore] = None,
        bus: Optional[StreamBus] = None,
    ) -> None:
        self.settings = settings or OrchestrationSettings()
        self.catalog = AgentCatalog(generator, timeout=self.settings.generation_timeout)
        self.supervisor = supervisor or Supervisor(
            generator,
            model=self.settings.supervisor_model,
            temperature=self.settings.supervisor_temperature,
            max_tokens=self.settings.supervisor_max_tokens,
            context_messages=self.settings.supervisor_context_messages,
            timeout=self.settings.generation_timeout,
        )
        self.store = store
        self.bus = bus
        self.sessions = SessionRegistry(
            self._create_orchestrator,
            ttl_seconds=self.settings.session_ttl_seconds,
            max_sessions=self.settings.max_sessions,
        )

    def _create_orchestrator(self, session_id: str, participant_ids: Sequence[str]) -> Orchestrator:
        # A session opened without an explicit roster starts with every registered agent.
        participants = list(participant_ids) or self.catalog.ids()
        return Orchestrator(
            session_id,
            catalog=self.catalog,
            supervisor=self.supervisor,
            participants=participants,
            settings=self.settings,
            store=self.store,
            bus=self.bus,
        )

    def register_agent(self, descriptor: AgentDescriptor) -> AgentDescriptor:
        self.catalog.register(descriptor)
        return descriptor

    def unregister_agent(self, agent_id: str) -> bool:
        """Remove an agent from the catalog and from every session's participants."""
        removed = self.catalog.unregister(agent_id)
        for orchestrator in self.sessions.orchestrators():
            orchestrator.remove_participant(agent_id)
        return removed

    def list_agents(self) -> List[AgentDescriptor]:
        return self.catalog.list_agents()

    def get_agent(self, agent_id: str) -> Optional[AgentDescriptor]:
        return self.catalog.get_agent(agent_id)

    def init_session(
        self,
        session_id: str,
        metadata: Optional[dict] = None,
        participant_ids: Iterable[str] = (),
        mode: Optional[OrchestrationMode] = None,
    ) -> Orchestrator:
        orchestrator = self.sessions.get_or_create(session_id, participant_ids)
        if metadata:
            orchestrator.state.metadata.update(metadata)
        if mode is not None:
            orchestrator.mode = mode
        return orchestrator

    def load_history(self, session_id: str, messages: Iterable[ChatMessage]) -> int:
        count = self.sessions.get(session_id).load_history(messages)
        logger.info("history_loaded", session_id=session_id, messages=count)
        return count

    async def process_message(
        self,
        session_id: str,
        user_message: str,
        confirmed_intent: Optional[str] = None,
        tasks: Sequence[Task] = (),
        *,
        stream_id: Optional[str] = None,
    ) -> TurnResult:
        return await self.sessions.dispatch(
            session_id,
            user_message,
            confirmed_intent,
            tasks=tasks,
            stream_id=stream_id,
        )

    def interrupt_session(self, session_id: str) -> bool:
        return self.sessions.interrupt(session_id)

    def resume_session(self, session_id: str) -> bool:
        return self.sessions.resume(session_id)

    def export_transcript(self, session_id: str) -> str:
        return self.sessions.get(session_id).export_transcript()

    def end_session(self, session_id: str) -> bool:
        return self.sessions.remove(session_id)

    async def shutdown(self) -> None:
        await self.sessions.shutdown()
