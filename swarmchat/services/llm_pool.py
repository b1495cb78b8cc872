"""LLM client pool for shared model access with concurrency control."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncAzureOpenAI, AsyncOpenAI

from swarmchat.config import AzureOpenAIConfig, OpenAICompatibleConfig
from swarmchat.core.logging import get_logger

logger = get_logger(name=__name__)


class LLMPool:
    """Manages shared LLM clients with concurrency limiting."""

    def __init__(self) -> None:
        self._clients: Dict[str, Any] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._initialized: Dict[str, bool] = {}
        self._default: Optional[str] = None

    def register_azure_openai(self, name: str, config: AzureOpenAIConfig) -> None:
        """Register an Azure OpenAI model configuration."""
        self._register(name, config, config.max_concurrent)

    def register_openai_compatible(self, name: str, config: OpenAICompatibleConfig) -> None:
        """Register an OpenAI-compatible endpoint such as OpenRouter."""
        self._register(name, config, config.max_concurrent)

    def _register(self, name: str, config: Any, max_concurrent: int) -> None:
        self._clients[name] = config
        self._semaphores[name] = asyncio.Semaphore(max_concurrent)
        self._initialized[name] = False
        if self._default is None:
            self._default = name

    @property
    def backends(self) -> List[str]:
        return list(self._clients)

    @property
    def default_backend(self) -> Optional[str]:
        return self._default

    @asynccontextmanager
    async def acquire(self, name: Optional[str] = None) -> AsyncIterator[Any]:
        """Acquire access to a client with concurrency control."""
        name = name or self._default
        if name is None or name not in self._clients:
            raise KeyError(f"Model '{name}' not registered in LLM pool")

        semaphore = self._semaphores[name]
        await semaphore.acquire()

        try:
            # Lazy initialization on first use
            if not self._initialized[name]:
                self._initialize_client(name)

            yield self._clients[name]
        finally:
            semaphore.release()

    def _initialize_client(self, name: str) -> None:
        """Lazy initialization of the actual client."""
        config = self._clients[name]

        if isinstance(config, AzureOpenAIConfig):
            self._clients[name] = AsyncAzureOpenAI(
                api_key=config.api_key,
                api_version=config.api_version,
                azure_endpoint=config.endpoint,
            )
        elif isinstance(config, OpenAICompatibleConfig):
            self._clients[name] = AsyncOpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
            )
        self._initialized[name] = True
        logger.info("llm_client_initialized", backend=name)
