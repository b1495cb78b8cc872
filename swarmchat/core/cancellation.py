"""Cooperative cancellation shared between a session and its in-flight turn."""
from __future__ import annotations

import asyncio


class CancellationToken:
    """Flag observed between discrete invocation steps.

    Setting the token never aborts an in-flight generation call; the
    orchestrator checks it at each phase boundary and before every agent
    invocation, and streaming invokers stop forwarding chunks once it fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> bool:
        """Clear the flag. Returns False when it was not set."""
        if not self._event.is_set():
            return False
        self._event.clear()
        return True

    async def wait(self) -> None:
        await self._event.wait()
