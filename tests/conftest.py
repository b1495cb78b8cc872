"""Shared fixtures: a scripted generation service and a two-agent hub."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence, Set

import pytest

from swarmchat.agents.supervisor import SYNTHESIS_PROMPT
from swarmchat.agents.supervisor import SYSTEM_PROMPT as SUPERVISOR_PROMPT
from swarmchat.config import OrchestrationSettings
from swarmchat.core.models import AgentDescriptor, ChatMessage
from swarmchat.orchestration.hub import AgentHub
from swarmchat.services.generation import Generation

AGENT_PREFIX = "agent:"


def make_agent(agent_id: str, name: str, role: str = "specialist") -> AgentDescriptor:
    return AgentDescriptor(
        id=agent_id,
        name=name,
        role=role,
        description=f"{name} specialist",
        system_prompt=f"{AGENT_PREFIX}{agent_id}",
    )


@dataclass
class Call:
    system_prompt: str
    history: Sequence[ChatMessage]
    user_input: str

    @property
    def agent_id(self) -> Optional[str]:
        if self.system_prompt.startswith(AGENT_PREFIX):
            return self.system_prompt[len(AGENT_PREFIX):]
        return None


class ScriptedGenerator:
    """Generation service replaying canned supervisor output and fake agent replies."""

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self.supervisor_replies: List[str] = []
        self.failing: Set[str] = set()
        self.fail_times: Dict[str, int] = {}
        self.delays: Dict[str, float] = {}
        self.hooks: Dict[str, Callable[[], None]] = {}
        self.synthesis_error: Optional[Exception] = None
        self.cost = 0.01

    @property
    def supervisor_calls(self) -> List[Call]:
        return [call for call in self.calls if call.system_prompt == SUPERVISOR_PROMPT]

    @property
    def synthesis_calls(self) -> List[Call]:
        return [call for call in self.calls if call.system_prompt == SYNTHESIS_PROMPT]

    @property
    def agent_calls(self) -> List[Call]:
        return [call for call in self.calls if call.agent_id is not None]

    def invoked(self) -> List[str]:
        return [call.agent_id for call in self.agent_calls]

    async def generate(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_input: str,
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> Generation:
        call = Call(system_prompt, tuple(history), user_input)
        self.calls.append(call)
        if system_prompt == SUPERVISOR_PROMPT:
            raw = self.supervisor_replies.pop(0) if self.supervisor_replies else "I think the developer?"
            return Generation(text=raw)
        if system_prompt == SYNTHESIS_PROMPT:
            if self.synthesis_error is not None:
                raise self.synthesis_error
            return Generation(text=f"synthesized {len(self.synthesis_calls)}", cost_usd=self.cost)

        agent_id = call.agent_id
        hook = self.hooks.get(agent_id)
        if hook is not None:
            hook()
        delay = self.delays.get(agent_id, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if agent_id in self.failing:
            raise RuntimeError(f"{agent_id} backend unavailable")
        if self.fail_times.get(agent_id, 0) > 0:
            self.fail_times[agent_id] -= 1
            raise RuntimeError(f"{agent_id} transient error")
        count = self.invoked().count(agent_id)
        return Generation(text=f"{agent_id} reply {count}", cost_usd=self.cost)

    async def stream(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_input: str,
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        generation = await self.generate(system_prompt, history, user_input)
        text = generation.text
        for start in range(0, len(text), 3):
            await asyncio.sleep(0)
            yield text[start:start + 3]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def settings() -> OrchestrationSettings:
    return OrchestrationSettings(generation_timeout=2.0)


@pytest.fixture
def hub(generator: ScriptedGenerator, settings: OrchestrationSettings) -> AgentHub:
    hub = AgentHub(generator, settings=settings)
    hub.register_agent(make_agent("pm", "Product Manager", "planning"))
    hub.register_agent(make_agent("dev", "Developer", "engineering"))
    return hub
