"""Human-readable rendering of a session's conversation log."""
from __future__ import annotations

from typing import Iterable

from swarmchat.core.models import ChatMessage, MessageRole


def render_markdown(session_id: str, participants: Iterable[str], messages: Iterable[ChatMessage]) -> str:
    """Render the full log as Markdown. Pure: reads only its arguments."""
    lines = [
        "# Multi-Agent Conversation",
        "",
        f"Session ID: {session_id}",
        f"Participants: {', '.join(participants)}",
        "",
        "---",
        "",
    ]
    for message in messages:
        stamp = message.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        if message.role is MessageRole.USER:
            lines.append(f"**{message.sender_name or 'User'}** ({stamp}):")
            lines.append(message.content)
        elif message.role is MessageRole.AGENT:
            lines.append(f"**{message.sender_name or message.sender_id}** ({stamp}):")
            lines.append(message.content)
        else:
            lines.append(f"*System: {message.content}*")
        lines.append("")
    return "\n".join(lines)
