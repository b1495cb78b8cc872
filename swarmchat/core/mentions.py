"""Extraction of explicitly addressed agents from raw message text."""
from __future__ import annotations

import re
from typing import Iterable, List

from swarmchat.core.models import AgentDescriptor

MENTION_PATTERN = re.compile(r"@([\w-]+)")


def resolve_mentions(raw_text: str, roster: Iterable[AgentDescriptor]) -> List[str]:
    """Return roster ids addressed in ``raw_text``, first occurrence order, no duplicates.

    A token matches an agent by exact id first, otherwise by case-insensitive
    containment inside the agent's display name. Unmatched tokens are dropped.
    """
    if not isinstance(raw_text, str) or "@" not in raw_text:
        return []

    agents = list(roster)
    resolved: List[str] = []
    for token in MENTION_PATTERN.findall(raw_text):
        agent_id = _match_token(token, agents)
        if agent_id is not None and agent_id not in resolved:
            resolved.append(agent_id)
    return resolved


def _match_token(token: str, agents: List[AgentDescriptor]) -> str | None:
    for agent in agents:
        if agent.id == token:
            return agent.id
    lowered = token.lower()
    for agent in agents:
        if lowered in agent.name.lower():
            return agent.id
    return None
