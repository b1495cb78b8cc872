"""Catalog of registered specialists shared by every session."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from swarmchat.agents.specialist import SpecialistAgent
from swarmchat.core.logging import get_logger
from swarmchat.core.models import AgentDescriptor
from swarmchat.services.generation import GenerationService

logger = get_logger(name=__name__)


class AgentCatalog:
    """Registration-ordered map of agent ids to their specialist invokers."""

    def __init__(self, generator: GenerationService, *, timeout: Optional[float] = None) -> None:
        self._generator = generator
        self._timeout = timeout
        self._specialists: Dict[str, SpecialistAgent] = {}

    def register(self, descriptor: AgentDescriptor) -> SpecialistAgent:
        """Create the invoker for a new agent. Registered agents are never reconfigured."""
        if descriptor.id in self._specialists:
            raise KeyError(f"Agent '{descriptor.id}' is already registered")
        specialist = SpecialistAgent(descriptor, self._generator, timeout=self._timeout)
        self._specialists[descriptor.id] = specialist
        logger.info("agent_registered", agent_id=descriptor.id, name=descriptor.name, role=descriptor.role)
        return specialist

    def unregister(self, agent_id: str) -> bool:
        removed = self._specialists.pop(agent_id, None)
        if removed is None:
            return False
        logger.info("agent_unregistered", agent_id=agent_id)
        return True

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._specialists

    def __len__(self) -> int:
        return len(self._specialists)

    def ids(self) -> List[str]:
        return list(self._specialists)

    def list_agents(self) -> List[AgentDescriptor]:
        return [specialist.descriptor for specialist in self._specialists.values()]

    def get_agent(self, agent_id: str) -> Optional[AgentDescriptor]:
        specialist = self._specialists.get(agent_id)
        return specialist.descriptor if specialist else None

    def specialist(self, agent_id: str) -> SpecialistAgent:
        if agent_id not in self._specialists:
            raise KeyError(f"No agent registered with id '{agent_id}'")
        return self._specialists[agent_id]

    def roster(self, agent_ids: Iterable[str]) -> List[AgentDescriptor]:
        """Descriptors for the given ids that are still registered, in the given order."""
        return [self._specialists[agent_id].descriptor for agent_id in agent_ids if agent_id in self._specialists]
