"""FastAPI entry-point exposing the multi-agent chat orchestrator."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI

from swarmchat.api.chat import router as chat_router
from swarmchat.api.routes import router as agents_router
from swarmchat.api.sessions import router as sessions_router
from swarmchat.config import config
from swarmchat.core.logging import configure_logging
from swarmchat.orchestration.hub import AgentHub
from swarmchat.runtime import get_hub

EVICTION_INTERVAL_SECONDS = 5 * 60


async def _evict_idle_sessions() -> None:
    hub = get_hub()
    while True:
        await asyncio.sleep(EVICTION_INTERVAL_SECONDS)
        hub.sessions.evict_idle()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    configure_logging(config.log_level)
    evictor = asyncio.create_task(_evict_idle_sessions())
    yield
    evictor.cancel()
    with suppress(asyncio.CancelledError):
        await evictor
    await get_hub().shutdown()


app = FastAPI(title="SwarmChat Orchestrator", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(sessions_router)
app.include_router(chat_router)


@app.get("/health")
async def health(hub: AgentHub = Depends(get_hub)) -> dict:
    return {"status": "ok", "sessions": len(hub.sessions)}
