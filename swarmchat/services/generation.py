"""Text-generation backends consumed by specialists and the supervisor."""
from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Protocol, Sequence

from swarmchat.core.models import ChatMessage, MessageRole
from swarmchat.services.llm_pool import LLMPool

# USD per million tokens.
MODEL_PRICING: Dict[str, float] = {
    "google/gemini-flash-1.5": 0.075,
    "anthropic/claude-3.5-sonnet": 3.0,
    "openai/gpt-4o": 2.5,
    "openai/gpt-4o-mini": 0.15,
    "gpt-4o": 2.5,
    "gpt-4o-mini": 0.15,
    "gpt-4": 30.0,
    "echo": 0.0,
}
DEFAULT_PRICE_PER_MILLION = 0.075


@dataclass(slots=True)
class Generation:
    """Text produced by one generation call plus its opaque cost figure."""

    text: str
    cost_usd: float = 0.0
    model: Optional[str] = None
    interrupted: bool = False


class GenerationService(Protocol):
    """External text-generation service."""

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
        ...

    def stream(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_input: str,
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> AsyncIterator[str]:
        ...


def estimate_tokens(text: str) -> int:
    # Roughly four characters per token.
    return math.ceil(len(text) / 4)


def estimate_cost(model: Optional[str], tokens: int) -> float:
    price = MODEL_PRICING.get(model or "", DEFAULT_PRICE_PER_MILLION)
    return tokens / 1_000_000 * price


def to_chat_messages(
    system_prompt: str,
    history: Sequence[ChatMessage],
    user_input: str,
) -> List[Dict[str, str]]:
    """Render history as OpenAI chat messages.

    The user input is appended unless it is already the latest user message.
    """
    messages = [{"role": "system", "content": system_prompt}]
    for message in history:
        if message.role is MessageRole.USER:
            messages.append({"role": "user", "content": message.content})
        elif message.role is MessageRole.AGENT:
            messages.append({"role": "assistant", "content": f"[{message.sender_name}]: {message.content}"})
        else:
            messages.append({"role": "system", "content": message.content})

    # Agents later in a chain see this turn's user message followed by earlier replies.
    latest_user = next((message for message in reversed(history) if message.role is MessageRole.USER), None)
    if latest_user is None or latest_user.content != user_input:
        messages.append({"role": "user", "content": user_input})
    return messages


class OpenAIGenerationService:
    """Generation service backed by chat completions on a pooled client."""

    def __init__(self, pool: LLMPool, *, default_model: str, backend: Optional[str] = None) -> None:
        self._pool = pool
        self._backend = backend
        self.default_model = default_model

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
        model_name = model or self.default_model
        async with self._pool.acquire(self._backend) as client:
            response = await client.chat.completions.create(
                model=model_name,
                messages=to_chat_messages(system_prompt, history, user_input),
                temperature=temperature,
                max_tokens=max_tokens,
            )

        text = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        tokens = usage.total_tokens if usage is not None else estimate_tokens(text)
        return Generation(text=text, cost_usd=estimate_cost(model_name, tokens), model=model_name)

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
        async with self._pool.acquire(self._backend) as client:
            stream = await client.chat.completions.create(
                model=model or self.default_model,
                messages=to_chat_messages(system_prompt, history, user_input),
                temperature=temperature,
                max_tokens=max_tokens,
                stream=True,
            )
            async for event in stream:
                if not event.choices:
                    continue
                delta = event.choices[0].delta.content
                if delta:
                    yield delta


class EchoGenerationService:
    """Offline backend that answers by echoing the input; used by the demo."""

    def __init__(self, *, latency: float = 0.05) -> None:
        self._latency = latency

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
        await asyncio.sleep(self._latency)  # Simulate API latency
        return Generation(text=self._reply(system_prompt, history, user_input), model="echo")

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
        words = self._reply(system_prompt, history, user_input).split(" ")
        for index, word in enumerate(words):
            await asyncio.sleep(self._latency / max(len(words), 1))
            yield word if index == len(words) - 1 else f"{word} "

    @staticmethod
    def _reply(system_prompt: str, history: Sequence[ChatMessage], user_input: str) -> str:
        persona = system_prompt.splitlines()[0] if system_prompt else "assistant"
        return f"({persona}) heard '{user_input}' after {len(history)} messages"
