"""HTTP API exposing agent registration."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from swarmchat.core.models import AgentDescriptor
from swarmchat.orchestration.hub import AgentHub
from swarmchat.runtime import get_hub

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentCreateRequest(BaseModel):
    id: str = Field(..., description="Stable unique agent identifier", pattern=r"^[\w-]+$")
    name: str = Field(..., description="Display name, also used for @mention matching")
    role: str = Field(..., description="Short role label")
    description: str = Field(default="", description="Used verbatim in supervisor prompts")
    capabilities: List[str] = Field(default_factory=list)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, gt=0)
    system_prompt: Optional[str] = None
    model: Optional[str] = None

    def to_descriptor(self) -> AgentDescriptor:
        extra = {"system_prompt": self.system_prompt} if self.system_prompt else {}
        return AgentDescriptor(
            id=self.id,
            name=self.name,
            role=self.role,
            description=self.description or self.role,
            capabilities=tuple(self.capabilities),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            model=self.model,
            **extra,
        )


class AgentResponse(BaseModel):
    id: str
    name: str
    role: str
    description: str
    capabilities: List[str]
    model: Optional[str]

    @classmethod
    def from_descriptor(cls, descriptor: AgentDescriptor) -> "AgentResponse":
        return cls(
            id=descriptor.id,
            name=descriptor.name,
            role=descriptor.role,
            description=descriptor.description,
            capabilities=list(descriptor.capabilities),
            model=descriptor.model,
        )


@router.post("", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    request: AgentCreateRequest,
    hub: AgentHub = Depends(get_hub),
) -> AgentResponse:
    try:
        descriptor = hub.register_agent(request.to_descriptor())
    except KeyError as exc:
        detail = exc.args[0] if exc.args else str(exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc
    return AgentResponse.from_descriptor(descriptor)


@router.get("", response_model=List[AgentResponse])
async def list_agents(hub: AgentHub = Depends(get_hub)) -> List[AgentResponse]:
    return [AgentResponse.from_descriptor(desc) for desc in hub.list_agents()]


@router.get("/{agent_id}", response_model=AgentResponse)
async def get_agent(agent_id: str, hub: AgentHub = Depends(get_hub)) -> AgentResponse:
    descriptor = hub.get_agent(agent_id)
    if descriptor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return AgentResponse.from_descriptor(descriptor)


@router.delete("/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(agent_id: str, hub: AgentHub = Depends(get_hub)) -> None:
    if not hub.unregister_agent(agent_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
