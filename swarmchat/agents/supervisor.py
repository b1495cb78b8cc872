"""Supervisor that decides which specialist speaks when nobody was addressed."""
from __future__ import annotations

import asyncio
import json
from typing import Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from swarmchat.core.errors import DecisionParseFailure, NoAvailableAgent
from swarmchat.core.logging import get_logger
from swarmchat.core.models import AgentDescriptor, ChatMessage, MessageRole, OrchestrationDecision, Task
from swarmchat.core.turn_state import TurnState
from swarmchat.services.generation import Generation, GenerationService

logger = get_logger(name=__name__)

FALLBACK_REASONING = "fallback selection due to decision error"
MENTION_REASONING = "explicit mention"

SYSTEM_PROMPT = "You are an intelligent agent coordinator. Always respond with valid JSON."
SYNTHESIS_PROMPT = "You are summarizing the results of a multi-agent collaboration."


class DecisionPayload(BaseModel):
    """Wire shape of the decision the model is asked to emit."""

    model_config = ConfigDict(extra="ignore")

    next_agent_id: str = Field(alias="nextAgentId", min_length=1)
    reasoning: str = ""
    should_continue: bool = Field(default=False, alias="shouldContinue")
    suggested_follow_up: Optional[str] = Field(default=None, alias="suggestedFollowUp")
    clarification_question: Optional[str] = Field(default=None, alias="clarificationQuestion")


class Supervisor:
    """Picks the next speaker using a bounded context and strict output validation."""

    def __init__(
        self,
        generator: GenerationService,
        *,
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 500,
        context_messages: int = 5,
        synthesis_max_tokens: int = 1000,
        timeout: Optional[float] = None,
    ) -> None:
        self._generator = generator
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.context_messages = context_messages
        self.synthesis_max_tokens = synthesis_max_tokens
        self._timeout = timeout

    async def decide_next(
        self,
        user_input: str,
        turn_state: TurnState,
        available_agents: Sequence[AgentDescriptor],
        mentioned_ids: Sequence[str] = (),
        *,
        confirmed_intent: Optional[str] = None,
        allow_clarification: bool = False,
    ) -> OrchestrationDecision:
        if mentioned_ids:
            return OrchestrationDecision(
                next_agent_id=mentioned_ids[0],
                reasoning=MENTION_REASONING,
                should_continue=len(mentioned_ids) > 1,
            )

        if not available_agents:
            raise NoAvailableAgent(f"No agents available in session '{turn_state.session_id}'")

        prompt = self.build_prompt(
            user_input,
            turn_state,
            available_agents,
            confirmed_intent=confirmed_intent,
            allow_clarification=allow_clarification,
        )
        try:
            raw = await self._ask(prompt)
            decision = parse_decision(raw, available_agents)
        except DecisionParseFailure as exc:
            logger.info("supervisor_fallback", session_id=turn_state.session_id, reason=str(exc))
            return self.fallback(available_agents)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "supervisor_call_failed",
                session_id=turn_state.session_id,
                error=str(exc) or type(exc).__name__,
            )
            return self.fallback(available_agents)

        if not allow_clarification:
            decision.clarification_question = None
        logger.debug(
            "supervisor_decision",
            session_id=turn_state.session_id,
            next_agent_id=decision.next_agent_id,
            should_continue=decision.should_continue,
        )
        return decision

    async def synthesize(
        self,
        user_input: str,
        replies: Sequence[Tuple[AgentDescriptor, str]],
        tasks: Sequence[Task] = (),
    ) -> Generation:
        """Combine several agent replies into one answer for the user.

        Errors propagate; the caller decides how to degrade.
        """
        titles = {task.assigned_to: task.title for task in reversed(tasks)}
        blocks = []
        for descriptor, content in replies:
            title = titles.get(descriptor.id)
            header = f"Agent {descriptor.name} (Task: {title})" if title else f"Agent {descriptor.name}"
            blocks.append(f"{header}:\n{content}")
        results = "\n\n---\n\n".join(blocks)

        prompt = f"""Original user request: "{user_input}"

Results from agents:
{results}

Create a comprehensive summary that:
1. Synthesizes all agent outputs into a coherent response
2. Highlights key findings and insights
3. Provides actionable recommendations if applicable

Keep the summary concise but complete."""
        return await asyncio.wait_for(
            self._generator.generate(
                SYNTHESIS_PROMPT,
                (),
                prompt,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.synthesis_max_tokens,
            ),
            timeout=self._timeout,
        )

    @staticmethod
    def fallback(available_agents: Sequence[AgentDescriptor]) -> OrchestrationDecision:
        return OrchestrationDecision(
            next_agent_id=available_agents[0].id,
            reasoning=FALLBACK_REASONING,
            should_continue=False,
        )

    async def _ask(self, prompt: str) -> str:
        generation = await asyncio.wait_for(
            self._generator.generate(
                SYSTEM_PROMPT,
                (),
                prompt,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            ),
            timeout=self._timeout,
        )
        return generation.text

    def build_prompt(
        self,
        user_input: str,
        turn_state: TurnState,
        available_agents: Sequence[AgentDescriptor],
        *,
        confirmed_intent: Optional[str] = None,
        allow_clarification: bool = False,
    ) -> str:
        roster = "\n".join(
            f"- {agent.id}: {agent.name} ({agent.role}) - {agent.description}"
            for agent in available_agents
        )
        context = "\n".join(
            render_line(message) for message in turn_state.recent(self.context_messages)
        )
        intent = f"\nConfirmed Intent: {confirmed_intent}\n" if confirmed_intent else ""
        clarification = ""
        if allow_clarification:
            clarification = (
                "\nIf the request is too ambiguous for any agent to act on, add a "
                '"clarificationQuestion" field with one specific question for the user.\n'
            )

        return f"""You are a supervisor coordinating a group of specialist AI agents. Your task is to decide which agent should respond to the user's message.

Available Agents:
{roster}

Recent Conversation:
{context}

User's Latest Message: {user_input}
{intent}
Analyze the user's message and conversation context, then decide which agent is BEST suited to respond. Consider:
1. Agent expertise and capabilities
2. Conversation flow and context
3. User's implicit or explicit needs
{clarification}
Respond in this exact JSON format:
{{
  "nextAgentId": "agent-id",
  "reasoning": "Brief explanation of why this agent is best suited",
  "shouldContinue": false
}}

Set "shouldContinue" to true only if a second, different agent should add to the answer.
Only output valid JSON, nothing else."""


def render_line(message: ChatMessage) -> str:
    if message.role is MessageRole.USER:
        return f"User: {message.content}"
    if message.role is MessageRole.AGENT:
        return f"Agent ({message.sender_name}): {message.content}"
    return f"System: {message.content}"


def parse_decision(raw: str, available_agents: Sequence[AgentDescriptor]) -> OrchestrationDecision:
    """Validate raw model output into a decision naming an available agent."""
    fragment = extract_json_object(raw)
    if fragment is None:
        raise DecisionParseFailure("no JSON object in supervisor output")
    try:
        data = json.loads(fragment)
    except json.JSONDecodeError as exc:
        raise DecisionParseFailure(f"malformed JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise DecisionParseFailure("decision is not an object")
    try:
        payload = DecisionPayload.model_validate(data)
    except ValidationError as exc:
        raise DecisionParseFailure(f"invalid decision shape: {exc.error_count()} errors") from exc

    if payload.next_agent_id not in {agent.id for agent in available_agents}:
        raise DecisionParseFailure(f"unknown agent '{payload.next_agent_id}'")

    return OrchestrationDecision(
        next_agent_id=payload.next_agent_id,
        reasoning=payload.reasoning,
        should_continue=payload.should_continue,
        suggested_follow_up=payload.suggested_follow_up or None,
        clarification_question=payload.clarification_question or None,
    )


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring, ignoring braces inside strings."""
    if not isinstance(text, str):
        return None
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from this brace; try the next opening brace.
        start = text.find("{", start + 1)
    return None
