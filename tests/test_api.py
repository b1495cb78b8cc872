"""HTTP adapter tests against an in-process hub."""
from __future__ import annotations

import asyncio
import json

import pytest
from conftest import ScriptedGenerator, make_agent
from fastapi.testclient import TestClient

from swarmchat.api import chat as chat_api
from swarmchat.api.chat import ChatRequest, stream_turn
from swarmchat.config import OrchestrationSettings
from swarmchat.core.stream_bus import StreamBus
from swarmchat.main import app
from swarmchat.orchestration.hub import AgentHub
from swarmchat.runtime import get_hub, get_stream_bus


@pytest.fixture
def bus() -> StreamBus:
    return StreamBus()


@pytest.fixture
def api_hub(generator: ScriptedGenerator, bus: StreamBus) -> AgentHub:
    hub = AgentHub(generator, settings=OrchestrationSettings(generation_timeout=2.0), bus=bus)
    hub.register_agent(make_agent("pm", "Product Manager", "planning"))
    return hub


@pytest.fixture
def client(api_hub: AgentHub, bus: StreamBus):
    app.dependency_overrides[get_hub] = lambda: api_hub
    app.dependency_overrides[get_stream_bus] = lambda: bus
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_agent_registration_lifecycle(client: TestClient) -> None:
    created = client.post(
        "/agents",
        json={"id": "dev", "name": "Developer", "role": "engineering", "capabilities": ["python"]},
    )
    assert created.status_code == 201
    assert created.json()["description"] == "engineering"

    duplicate = client.post("/agents", json={"id": "dev", "name": "Dev", "role": "engineering"})
    assert duplicate.status_code == 400

    invalid = client.post("/agents", json={"id": "has space", "name": "X", "role": "y"})
    assert invalid.status_code == 422

    assert [agent["id"] for agent in client.get("/agents").json()] == ["pm", "dev"]
    assert client.get("/agents/dev").json()["capabilities"] == ["python"]
    assert client.delete("/agents/dev").status_code == 204
    assert client.get("/agents/dev").status_code == 404
    assert client.delete("/agents/dev").status_code == 404


def test_session_dispatch_and_transcript(client: TestClient) -> None:
    opened = client.post("/sessions/s1", json={"mode": "sequential"})
    assert opened.status_code == 201
    assert opened.json()["participants"] == ["pm"]
    assert opened.json()["mode"] == "sequential"

    response = client.post(
        "/sessions/s1/dispatch",
        json={
            "message": "@pm plan it",
            "tasks": [{"id": "t-1", "title": "Plan", "assigned_to": "pm"}],
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["turn_index"] == 1
    assert body["summary"] == "pm reply 1"
    assert body["results"] == [{"task_id": "t-1", "agent_id": "pm", "content": "pm reply 1"}]
    assert body["events"][0]["type"] == "system"

    transcript = client.get("/sessions/s1/transcript")
    assert transcript.status_code == 200
    assert transcript.headers["content-type"].startswith("text/markdown")
    assert "pm reply 1" in transcript.text


def test_control_endpoint(client: TestClient) -> None:
    assert client.post("/sessions/missing/control", json={"action": "cancel"}).status_code == 404

    client.post("/sessions/s1", json={})
    assert client.post("/sessions/s1/control", json={"action": "cancel"}).json() == {"ok": True, "action": "cancel"}
    assert client.get("/sessions/s1").json()["interrupted"] is True

    cancelled = client.post("/sessions/s1/dispatch", json={"message": "@pm hi"}).json()
    assert cancelled["is_cancelled"] is True

    assert client.post("/sessions/s1/control", json={"action": "resume"}).json()["ok"] is True
    assert client.post("/sessions/s1/control", json={"action": "resume"}).json()["ok"] is False
    assert client.post("/sessions/s1/control", json={"action": "pause"}).status_code == 422


def test_history_and_missing_sessions(client: TestClient) -> None:
    assert client.get("/sessions/missing").status_code == 404
    assert client.get("/sessions/missing/transcript").status_code == 404
    assert client.post("/sessions/missing/history", json={"messages": []}).status_code == 404

    client.post("/sessions/s1", json={})
    history = {"messages": [{"role": "user", "content": "earlier"}]}
    assert client.post("/sessions/s1/history", json=history).json() == {"loaded": 1}
    assert client.post("/sessions/s1/history", json=history).status_code == 409
    assert client.delete("/sessions/s1").status_code == 204


def test_dispatch_without_agents_conflicts(client: TestClient, api_hub: AgentHub) -> None:
    api_hub.unregister_agent("pm")
    client.post("/sessions/s1", json={})

    response = client.post("/sessions/s1/dispatch", json={"message": "hello"})

    assert response.status_code == 409


def test_chat_stream_emits_chunks_then_result(client: TestClient) -> None:
    client.post("/sessions/s1", json={})

    response = client.post("/chat/s1/stream", json={"message": "@pm stream please"})

    assert response.status_code == 200
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    chunks = [line for line in lines if line["type"] == "chunk"]
    assert chunks
    assert "".join(chunk["text"] for chunk in chunks) == "pm reply 1"
    assert lines[-1]["type"] == "result"
    assert lines[-1]["summary"] == "pm reply 1"


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def _collect(hub: AgentHub, bus: StreamBus, session_id: str, request: ChatRequest) -> list:
    return [json.loads(line) async for line in stream_turn(hub, bus, session_id, request)]


@pytest.mark.anyio
async def test_concurrent_streams_relay_only_their_own_turn(
    api_hub: AgentHub, bus: StreamBus, generator: ScriptedGenerator
) -> None:
    api_hub.register_agent(make_agent("dev", "Developer"))
    api_hub.init_session("s1")
    generator.delays["pm"] = 0.05

    first, second = await asyncio.gather(
        _collect(api_hub, bus, "s1", ChatRequest(message="@pm first")),
        _collect(api_hub, bus, "s1", ChatRequest(message="@dev second")),
    )

    for lines, agent_id, turn_index in ((first, "pm", 1), (second, "dev", 2)):
        chunks = [line for line in lines if line["type"] == "chunk"]
        assert {chunk["agent_id"] for chunk in chunks} == {agent_id}
        assert "".join(chunk["text"] for chunk in chunks) == f"{agent_id} reply 1"
        assert lines[-1]["type"] == "result"
        assert lines[-1]["turn_index"] == turn_index


@pytest.mark.anyio
async def test_timed_out_stream_keeps_turn_alive(
    api_hub: AgentHub, bus: StreamBus, generator: ScriptedGenerator
) -> None:
    api_hub.init_session("s1")
    generator.delays["pm"] = 0.2
    before = set(chat_api._running_turns)

    lines = await _collect(api_hub, bus, "s1", ChatRequest(message="@pm slow", timeout=0.01))

    assert lines == [{"type": "error", "detail": "Timed out waiting for agents."}]
    detached = chat_api._running_turns - before
    assert len(detached) == 1
    await asyncio.gather(*detached)
    await asyncio.sleep(0)
    assert not detached & chat_api._running_turns
    assert [message.content for message in api_hub.sessions.get("s1").state.messages] == ["@pm slow", "pm reply 1"]
