"""Tests for the hub facade."""
from __future__ import annotations

import pytest
from conftest import ScriptedGenerator, make_agent

from swarmchat.core.errors import UnknownSession
from swarmchat.core.models import ChatMessage, OrchestrationMode

pytestmark = pytest.mark.anyio


async def test_register_rejects_duplicates(hub) -> None:
    with pytest.raises(KeyError):
        hub.register_agent(make_agent("pm", "Another PM"))

    assert [agent.id for agent in hub.list_agents()] == ["pm", "dev"]
    assert hub.get_agent("dev").name == "Developer"
    assert hub.get_agent("nobody") is None


async def test_session_defaults_to_all_registered_agents(hub) -> None:
    orchestrator = hub.init_session("s1", {"topic": "launch"}, mode=OrchestrationMode.PARALLEL)

    assert orchestrator.state.participants == ("pm", "dev")
    assert orchestrator.state.metadata == {"topic": "launch"}
    assert orchestrator.mode is OrchestrationMode.PARALLEL


async def test_unregister_removes_agent_from_sessions(hub, generator: ScriptedGenerator) -> None:
    hub.init_session("s1")
    hub.init_session("s2", participant_ids=["dev"])

    assert hub.unregister_agent("dev") is True
    assert hub.unregister_agent("dev") is False

    assert hub.sessions.get("s1").state.participants == ("pm",)
    assert hub.sessions.get("s2").state.participants == ()
    result = await hub.process_message("s1", "@dev are you there?")
    assert generator.invoked() == ["pm"]
    assert result.summary == "pm reply 1"


async def test_load_history_seeds_empty_session(hub, generator: ScriptedGenerator) -> None:
    hub.init_session("s1")
    previous = [ChatMessage.user("earlier question"), ChatMessage.system("Session restored")]

    assert hub.load_history("s1", previous) == 2
    with pytest.raises(ValueError):
        hub.load_history("s1", previous)

    await hub.process_message("s1", "@dev continue")
    assert [message.content for message in generator.agent_calls[0].history][:2] == [
        "earlier question",
        "Session restored",
    ]


async def test_load_history_unknown_session(hub) -> None:
    with pytest.raises(UnknownSession):
        hub.load_history("missing", [])


async def test_export_transcript(hub) -> None:
    hub.init_session("s1")
    await hub.process_message("s1", "@pm scope please")

    transcript = hub.export_transcript("s1")

    assert transcript.startswith("# Multi-Agent Conversation")
    assert "Session ID: s1" in transcript
    assert "Participants: Product Manager, Developer" in transcript
    assert "@pm scope please" in transcript
    assert "**Product Manager**" in transcript
    assert "pm reply 1" in transcript


async def test_end_session(hub) -> None:
    hub.init_session("s1")

    assert hub.end_session("s1") is True
    assert hub.end_session("s1") is False
    with pytest.raises(UnknownSession):
        hub.export_transcript("s1")
