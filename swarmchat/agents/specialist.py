"""Specialist agent wrapping one registered identity and the generation service."""
from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence

from swarmchat.core.cancellation import CancellationToken
from swarmchat.core.errors import GenerationFailure, GenerationTimeout
from swarmchat.core.models import AgentDescriptor, ChatMessage
from swarmchat.services.generation import Generation, GenerationService, estimate_cost, estimate_tokens

ChunkCallback = Callable[[str], None]


class SpecialistAgent:
    """Agent that answers a turn using its own prompt template and generation parameters.

    Configured once at registration. Failures surface as ``GenerationFailure``
    tagged with the agent id; retrying is the orchestrator's business.
    """

    def __init__(
        self,
        descriptor: AgentDescriptor,
        generator: GenerationService,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self.descriptor = descriptor
        self._generator = generator
        self._timeout = timeout

    @property
    def agent_id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    async def respond(self, user_input: str, history: Sequence[ChatMessage]) -> str:
        """Generate a complete reply."""
        generation = await self.invoke(user_input, history)
        return generation.text

    async def respond_streaming(
        self,
        user_input: str,
        history: Sequence[ChatMessage],
        on_chunk: ChunkCallback,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Generate a reply chunk by chunk; the result is the concatenation of forwarded chunks."""
        generation = await self.invoke(user_input, history, on_chunk=on_chunk, cancel_token=cancel_token)
        return generation.text

    async def invoke(
        self,
        user_input: str,
        history: Sequence[ChatMessage],
        *,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Generation:
        if on_chunk is None:
            call = self._generate(user_input, history)
        else:
            call = self._stream(user_input, history, on_chunk, cancel_token)

        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeout(self.agent_id, f"timed out after {self._timeout}s", cause=exc) from exc
        except GenerationFailure:
            raise
        except Exception as exc:  # noqa: BLE001
            raise GenerationFailure(self.agent_id, str(exc) or type(exc).__name__, cause=exc) from exc

    async def _generate(self, user_input: str, history: Sequence[ChatMessage]) -> Generation:
        return await self._generator.generate(
            self.descriptor.system_prompt,
            history,
            user_input,
            **self._generation_params(),
        )

    async def _stream(
        self,
        user_input: str,
        history: Sequence[ChatMessage],
        on_chunk: ChunkCallback,
        cancel_token: Optional[CancellationToken],
    ) -> Generation:
        stream = self._generator.stream(
            self.descriptor.system_prompt,
            history,
            user_input,
            **self._generation_params(),
        )
        parts: List[str] = []
        interrupted = False
        try:
            while True:
                if cancel_token is not None and cancel_token.cancelled:
                    interrupted = True
                    break
                chunk = await self._next_chunk(stream, cancel_token)
                if chunk is _CANCELLED:
                    interrupted = True
                    break
                if chunk is None:
                    break
                parts.append(chunk)
                on_chunk(chunk)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        text = "".join(parts)
        model = self.descriptor.model
        return Generation(
            text=text,
            cost_usd=estimate_cost(model, estimate_tokens(text)),
            model=model,
            interrupted=interrupted,
        )

    @staticmethod
    async def _next_chunk(stream: AsyncIterator[str], cancel_token: Optional[CancellationToken]) -> Any:
        """Wait for the next chunk, giving up early if the token fires."""
        pending = asyncio.ensure_future(_anext_or_none(stream))
        if cancel_token is None:
            return await pending

        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait({pending, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if pending in done:
            return pending.result()
        pending.cancel()
        await asyncio.wait({pending})
        return _CANCELLED

    def _generation_params(self) -> dict:
        params = {
            "temperature": self.descriptor.temperature,
            "max_tokens": self.descriptor.max_tokens,
        }
        if self.descriptor.model:
            params["model"] = self.descriptor.model
        return params


_CANCELLED = object()


async def _anext_or_none(stream: AsyncIterator[str]) -> Optional[str]:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None
