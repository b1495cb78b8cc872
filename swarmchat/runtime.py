"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache

from swarmchat.config import config
from swarmchat.core.logging import get_logger
from swarmchat.core.stream_bus import StreamBus
from swarmchat.orchestration.hub import AgentHub
from swarmchat.services.generation import EchoGenerationService, GenerationService, OpenAIGenerationService
from swarmchat.services.llm_pool import LLMPool
from swarmchat.services.persistence import InMemoryTranscriptStore, TranscriptStore

logger = get_logger(name=__name__)


@lru_cache
def get_stream_bus() -> StreamBus:
    return StreamBus()


@lru_cache
def get_llm_pool() -> LLMPool:
    pool = LLMPool()

    if config.openai_compatible:
        pool.register_openai_compatible("openai", config.openai_compatible)
    # Register Azure OpenAI if configured
    if config.azure_openai:
        pool.register_azure_openai("azure", config.azure_openai)

    return pool


@lru_cache
def get_generation_service() -> GenerationService:
    pool = get_llm_pool()
    if pool.default_backend is None:
        logger.warning("no_llm_backend_configured", fallback="echo")
        return EchoGenerationService()
    return OpenAIGenerationService(pool, default_model=config.default_model)


@lru_cache
def get_transcript_store() -> TranscriptStore:
    return InMemoryTranscriptStore()


@lru_cache
def get_hub() -> AgentHub:
    return AgentHub(
        get_generation_service(),
        settings=config.orchestration,
        store=get_transcript_store(),
        bus=get_stream_bus(),
    )
