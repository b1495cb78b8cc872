"""Tests for the specialist invoker."""
from __future__ import annotations

from typing import List

import pytest
from conftest import ScriptedGenerator, make_agent

from swarmchat.agents.specialist import SpecialistAgent
from swarmchat.core.cancellation import CancellationToken
from swarmchat.core.errors import GenerationFailure, GenerationTimeout
from swarmchat.core.models import ChatMessage

pytestmark = pytest.mark.anyio

HISTORY = (ChatMessage.user("hello"),)


@pytest.fixture
def dev(generator: ScriptedGenerator) -> SpecialistAgent:
    return SpecialistAgent(make_agent("dev", "Developer"), generator, timeout=1.0)


async def test_respond_uses_agent_prompt_and_history(dev: SpecialistAgent, generator: ScriptedGenerator) -> None:
    reply = await dev.respond("hello", HISTORY)

    assert reply == "dev reply 1"
    assert generator.agent_calls[0].agent_id == "dev"
    assert generator.agent_calls[0].history == HISTORY


async def test_invoke_reports_cost(dev: SpecialistAgent) -> None:
    generation = await dev.invoke("hello", HISTORY)

    assert generation.cost_usd == pytest.approx(0.01)
    assert generation.interrupted is False


async def test_failure_is_tagged_with_agent_id(dev: SpecialistAgent, generator: ScriptedGenerator) -> None:
    generator.failing.add("dev")

    with pytest.raises(GenerationFailure) as excinfo:
        await dev.respond("hello", HISTORY)

    assert excinfo.value.agent_id == "dev"
    assert "backend unavailable" in excinfo.value.reason
    assert not isinstance(excinfo.value, GenerationTimeout)


async def test_timeout_surfaces_as_generation_timeout(generator: ScriptedGenerator) -> None:
    generator.delays["dev"] = 0.5
    slow = SpecialistAgent(make_agent("dev", "Developer"), generator, timeout=0.05)

    with pytest.raises(GenerationTimeout) as excinfo:
        await slow.respond("hello", HISTORY)

    assert excinfo.value.agent_id == "dev"


async def test_streaming_result_is_concatenation_of_chunks(dev: SpecialistAgent) -> None:
    chunks: List[str] = []

    reply = await dev.respond_streaming("hello", HISTORY, chunks.append)

    assert len(chunks) > 1
    assert "".join(chunks) == reply == "dev reply 1"


async def test_streaming_stops_forwarding_once_cancelled(dev: SpecialistAgent) -> None:
    token = CancellationToken()
    chunks: List[str] = []

    def on_chunk(text: str) -> None:
        chunks.append(text)
        token.cancel()

    generation = await dev.invoke("hello", HISTORY, on_chunk=on_chunk, cancel_token=token)

    assert generation.interrupted is True
    assert chunks == ["dev"]
    assert generation.text == "dev"
