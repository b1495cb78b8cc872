"""Tests for the session registry."""
from __future__ import annotations

import asyncio
import time

import pytest
from conftest import ScriptedGenerator, make_agent

from swarmchat.config import OrchestrationSettings
from swarmchat.core.errors import UnknownSession
from swarmchat.orchestration.hub import AgentHub

pytestmark = pytest.mark.anyio


async def test_get_or_create_is_idempotent_and_merges_participants(hub: AgentHub) -> None:
    first = hub.sessions.get_or_create("s1", ["pm"])
    second = hub.sessions.get_or_create("s1", ["dev", "pm"])

    assert first is second
    assert first.state.participants == ("pm", "dev")
    assert len(hub.sessions) == 1


async def test_get_unknown_session_raises(hub: AgentHub) -> None:
    with pytest.raises(UnknownSession) as excinfo:
        hub.sessions.get("missing")

    assert "missing" in str(excinfo.value)


async def test_interrupt_and_resume_report_outcome(hub: AgentHub) -> None:
    assert hub.sessions.interrupt("missing") is False
    assert hub.sessions.resume("missing") is False

    hub.sessions.get_or_create("s1")
    assert hub.sessions.resume("s1") is False
    assert hub.sessions.interrupt("s1") is True
    assert hub.sessions.interrupt("s1") is True
    assert hub.sessions.stats()["interrupted_sessions"] == 1
    assert hub.sessions.resume("s1") is True
    assert hub.sessions.resume("s1") is False


async def test_concurrent_dispatch_is_serialized(hub: AgentHub, generator: ScriptedGenerator) -> None:
    generator.delays["pm"] = 0.05

    first, second = await asyncio.gather(
        hub.sessions.dispatch("s1", "@pm one"),
        hub.sessions.dispatch("s1", "@pm two"),
    )

    assert sorted([first.turn_index, second.turn_index]) == [1, 2]
    later = generator.agent_calls[1]
    assert [message.content for message in later.history] == ["@pm one", "pm reply 1", "@pm two"]


async def test_sessions_run_independently(hub: AgentHub, generator: ScriptedGenerator) -> None:
    await asyncio.gather(
        hub.sessions.dispatch("a", "@pm hello"),
        hub.sessions.dispatch("b", "@dev hello"),
    )

    assert len(hub.sessions.get("a").state) == 2
    assert len(hub.sessions.get("b").state) == 2
    assert sorted(generator.invoked()) == ["dev", "pm"]


async def test_remove_and_evict_idle(hub: AgentHub) -> None:
    hub.sessions.get_or_create("s1")
    hub.sessions.get_or_create("s2")

    assert hub.sessions.remove("s1") is True
    assert hub.sessions.remove("s1") is False
    assert hub.sessions.evict_idle() == []

    expired = hub.sessions.evict_idle(now=time.monotonic() + 31 * 60)
    assert expired == ["s2"]
    assert "s2" not in hub.sessions


async def test_session_limit_drops_least_recently_used(generator: ScriptedGenerator) -> None:
    hub = AgentHub(generator, settings=OrchestrationSettings(max_sessions=5))
    hub.register_agent(make_agent("pm", "Product Manager"))
    for index in range(5):
        hub.sessions.get_or_create(f"s{index}")
    hub.sessions.get_or_create("s0")

    hub.sessions.get_or_create("s5")

    assert len(hub.sessions) == 5
    assert "s1" not in hub.sessions
    assert "s0" in hub.sessions
    assert "s5" in hub.sessions


async def test_shutdown_clears_sessions(hub: AgentHub) -> None:
    await hub.sessions.dispatch("s1", "@pm hi")

    await hub.shutdown()

    assert len(hub.sessions) == 0
