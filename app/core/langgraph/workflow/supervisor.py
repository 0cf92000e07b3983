"""Supervisor that routes each turn to a specialist or to the final answer.

The supervisor uses the smart-tier model with structured output. Its
decision is validated against ``RouteDecision``; anything outside the enum
raises ``InvalidRouteError`` instead of being coerced. Once the run has
used up its specialist call limit the model is not consulted at all.
"""

import json
import re
from typing import (
    Any,
    Dict,
    Optional,
    Tuple,
)

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    SystemMessage,
)
from pydantic import ValidationError

from app.core.config import settings
from app.core.langgraph.agents.workers import WORKER_CLASSES
from app.core.langgraph.workflow.profiles import MarketProfile
from app.core.langgraph.workflow.schema import (
    AdvisorState,
    Participant,
    RouteDecision,
)
from app.core.logging import logger

ROUTING_PATTERN = re.compile(r"^\[Routing to (\w+)\]\s*(.*)$", re.DOTALL)


class InvalidRouteError(ValueError):
    """The supervisor model returned a routing choice outside the allowed set."""


def format_routing_message(target: Participant, reasoning: str) -> str:
    """Render the routing announcement appended to ``messages``."""
    return f"[Routing to {target.value}] {reasoning}".strip()


def parse_routing_message(content: str) -> Optional[Tuple[str, str]]:
    """Split a routing announcement into ``(participant, reasoning)``.

    Returns:
        Optional[Tuple[str, str]]: None if ``content`` is not an announcement.
    """
    match = ROUTING_PATTERN.match(content.strip())
    if not match:
        return None
    return match.group(1), match.group(2).strip()


class Supervisor:
    """Routing node of the advisor graph."""

    def __init__(self, model: BaseChatModel, profile: MarketProfile, max_agent_calls: Optional[int] = None):
        """Initialize the supervisor.

        Args:
            model: Smart-tier chat model supporting ``with_structured_output``.
            profile: Market profile used in the routing prompt.
            max_agent_calls: Maximum specialist calls per run; defaults to settings.
        """
        self.profile = profile
        self.max_agent_calls = max_agent_calls if max_agent_calls is not None else settings.ADVISOR_MAX_AGENT_CALLS
        self.router = model.with_structured_output(RouteDecision, include_raw=True)

    def _build_prompt(self, state: AdvisorState) -> str:
        worker_descriptions = "\n".join(
            f"**{participant.value}**: {worker_cls.description}" for participant, worker_cls in WORKER_CLASSES.items()
        )
        recent = "\n".join(str(m.content) for m in state.messages[-2:])
        return (
            f"You are a routing supervisor for a {self.profile.asset_label} advisory system.\n\n"
            "Your job is to analyze the user's query and route it to the appropriate specialist:\n\n"
            f"{worker_descriptions}\n"
            "**FINISH**: the gathered data answers the query and no more tool calls are needed.\n\n"
            "**ROUTING RULES**:\n"
            "1. For simple price or single-indicator queries: call TechnicalAnalyst ONCE, then FINISH.\n"
            "2. For broad analysis requests: call 2-3 relevant specialists, then FINISH.\n"
            "3. ALWAYS choose FINISH if the previous specialist provided data that answers the question.\n"
            f"4. {state.agent_calls} specialist calls made. Maximum is {self.max_agent_calls}. "
            "If only one call remains, strongly prefer FINISH.\n\n"
            f"Current data collected: {json.dumps(state.data, indent=2, default=str)}\n\n"
            f"Previous agent responses: {recent}\n\n"
            "**Ask yourself**: Does the collected data already answer the user's query? If YES, route to FINISH."
        )

    def _parse_decision(self, result: Any) -> RouteDecision:
        """Validate the structured output of the routing model.

        Raises:
            InvalidRouteError: If the output is missing or outside the enum.
        """
        if isinstance(result, dict) and "parsed" in result:
            if result.get("parsing_error") is not None:
                raise InvalidRouteError(f"Supervisor returned an invalid route: {result['parsing_error']}") from result[
                    "parsing_error"
                ]
            result = result["parsed"]

        if isinstance(result, RouteDecision):
            return result
        if result is None:
            raise InvalidRouteError("Supervisor returned no routing decision")
        try:
            return RouteDecision.model_validate(result)
        except ValidationError as e:
            raise InvalidRouteError(f"Supervisor returned an invalid route: {result!r}") from e

    async def __call__(self, state: AdvisorState) -> Dict[str, Any]:
        """Decide who runs next.

        Args:
            state: Current advisor state.

        Returns:
            Dict[str, Any]: State update with ``next`` and one routing announcement.

        Raises:
            InvalidRouteError: If the model's choice is not a valid route.
        """
        if state.agent_calls >= self.max_agent_calls:
            logger.info("supervisor_forced_finish", agent_calls=state.agent_calls, max_agent_calls=self.max_agent_calls)
            target = Participant.FINAL_RESPONSE
            reasoning = f"Maximum of {self.max_agent_calls} specialist calls reached. All necessary data collected."
        else:
            result = await self.router.ainvoke([SystemMessage(content=self._build_prompt(state)), *state.messages])
            decision = self._parse_decision(result)
            target = decision.next.to_participant()
            reasoning = decision.reasoning
            logger.info(
                "supervisor_routed",
                target=target.value,
                reasoning=reasoning,
                agent_calls=state.agent_calls,
            )

        return {
            "next": target,
            "messages": [AIMessage(content=format_routing_message(target, reasoning), name=Participant.SUPERVISOR.value)],
        }
