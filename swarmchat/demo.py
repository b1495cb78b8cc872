"""CLI demonstration of a multi-agent conversation across every dispatch mode."""
from __future__ import annotations

import asyncio

from swarmchat.core.logging import configure_logging
from swarmchat.core.models import AgentDescriptor, OrchestrationMode
from swarmchat.orchestration.hub import AgentHub
from swarmchat.services.generation import EchoGenerationService
from swarmchat.services.persistence import InMemoryTranscriptStore

DEMO_AGENTS = (
    AgentDescriptor(
        id="pm",
        name="Product Manager",
        role="planning",
        description="Clarifies goals, scope and priorities.",
        system_prompt="Product Manager\nYou turn vague requests into clear plans.",
    ),
    AgentDescriptor(
        id="dev",
        name="Developer",
        role="engineering",
        description="Writes and reviews code.",
        system_prompt="Developer\nYou answer with concrete implementation advice.",
    ),
)


async def main() -> None:
    hub = AgentHub(EchoGenerationService(), store=InMemoryTranscriptStore())
    for descriptor in DEMO_AGENTS:
        hub.register_agent(descriptor)

    orchestrator = hub.init_session("demo", {"topic": "release planning"})
    for mode, message in (
        (OrchestrationMode.DYNAMIC, "@dev please review the release script"),
        (OrchestrationMode.SEQUENTIAL, "@pm @dev what ships this week?"),
        (OrchestrationMode.PARALLEL, "@pm @dev any blockers?"),
        (OrchestrationMode.ROUND_ROBIN, "Quick status round, please."),
    ):
        orchestrator.mode = mode
        result = await hub.process_message("demo", message)
        print(f"[turn {result.turn_index} / {mode.value}] {result.summary}")

    print()
    print(hub.export_transcript("demo"))
    await hub.shutdown()


def run() -> None:
    configure_logging("WARNING")
    asyncio.run(main())


if __name__ == "__main__":
    run()
