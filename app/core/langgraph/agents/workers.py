"""Specialist worker agents for the advisor workflow.

Each worker is a fast-tier chat model with a focused system prompt and a
fixed tool set. One visit:

1. calls the model with the conversation and the bound tools;
2. without tool calls, hands the model's text back as a note;
3. with tool calls, runs them all through the ToolInvoker and stores the
   payloads under the worker's namespace in ``data``;
4. always adds exactly one to ``agent_calls`` and returns to the Supervisor.

Model failures propagate to the driver; tool failures never do, they arrive
here already converted to error payloads.
"""

import json
from typing import (
    Any,
    Dict,
    List,
    Type,
)

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    SystemMessage,
)

from app.core.langgraph.tools import ToolInvoker
from app.core.langgraph.workflow.profiles import MarketProfile
from app.core.langgraph.workflow.schema import (
    AdvisorState,
    Participant,
)
from app.core.logging import logger


def _has_error(payload: Any) -> bool:
    """Whether a tool result, or any result of a repeated tool, is an error payload."""
    if isinstance(payload, list):
        return any(_has_error(item) for item in payload)
    return isinstance(payload, dict) and "error" in payload


class BaseWorker:
    """Base class for all specialist workers.

    Attributes:
        participant: Graph node this worker runs as.
        namespace: Key under ``data`` this worker owns.
        description: Brief description used in the supervisor prompt.
        system_prompt: Prompt template; formatted with the market profile.
    """

    participant: Participant = Participant.TECHNICAL_ANALYST
    namespace: str = "worker"
    description: str = "A specialist worker."
    system_prompt: str = "You are a helpful {asset_label} specialist."

    def __init__(self, model: BaseChatModel, invoker: ToolInvoker, profile: MarketProfile):
        """Initialize the worker.

        Args:
            model: Chat model supporting ``bind_tools``.
            invoker: Tool Invocation Layer for this market.
            profile: Market profile the worker serves.
        """
        self.profile = profile
        self.invoker = invoker
        self.tool_names: List[str] = profile.worker_tools[self.participant]
        self.tools = invoker.as_langchain_tools(self.tool_names)
        self.model = model.bind_tools(self.tools) if self.tools else model

    @property
    def name(self) -> str:
        """Node name of this worker."""
        return self.participant.value

    def build_system_prompt(self) -> str:
        """Render the system prompt for the worker's market."""
        tool_lines = "\n".join(f"- {t.name}: {t.description}" for t in self.tools)
        return self.system_prompt.format(
            asset_label=self.profile.asset_label,
            examples=", ".join(self.profile.example_symbols),
            tools=tool_lines,
            technical_focus=self.profile.technical_focus,
            research_focus=self.profile.research_focus,
        )

    def _summarize(self, findings: Dict[str, Any], content: str) -> str:
        failed = [name for name, payload in findings.items() if _has_error(payload)]
        summary = f"[{self.name}] Collected {', '.join(findings)}"
        if failed:
            summary += f" ({len(failed)} failed: {', '.join(failed)})"
        summary += "."
        if content:
            summary += f"\n{content}"
        return summary

    async def __call__(self, state: AdvisorState) -> Dict[str, Any]:
        """Run one worker visit.

        Args:
            state: Current advisor state.

        Returns:
            Dict[str, Any]: State update for the graph.
        """
        messages = [SystemMessage(content=self.build_system_prompt()), *state.messages]
        response = await self.model.ainvoke(messages)
        content = response.content if isinstance(response.content, str) else json.dumps(response.content)
        tool_calls = getattr(response, "tool_calls", None) or []

        if not tool_calls:
            logger.info("worker_answered_without_tools", worker=self.name, content_length=len(content))
            return {
                "messages": [AIMessage(content=content, name=self.name)],
                "next": Participant.SUPERVISOR,
                "agent_calls": 1,
            }

        logger.info(
            "worker_tool_calls_requested",
            worker=self.name,
            tools=[call["name"] for call in tool_calls],
        )
        findings = await self.invoker.invoke_all(tool_calls)

        logger.info("worker_completed", worker=self.name, namespace=self.namespace, tools=list(findings))
        return {
            "messages": [AIMessage(content=self._summarize(findings, content), name=self.name)],
            "data": {self.namespace: findings},
            "next": Participant.SUPERVISOR,
            "agent_calls": 1,
        }


class TechnicalAnalystWorker(BaseWorker):
    """Price and technical indicator specialist."""

    participant = Participant.TECHNICAL_ANALYST
    namespace = "technical"
    description = "Price, charts, indicators (RSI, MACD, EMA, ...), support/resistance and trading signals."
    system_prompt = (
        "You are a Technical Analyst specialist for {asset_label} markets.\n\n"
        "Your tools:\n{tools}\n\n"
        "**Your task**: Identify the symbol in the user's query (e.g. {examples}) and call the "
        "appropriate tools to gather technical data. Call one indicator tool per indicator you need. "
        "Do NOT provide analysis without calling tools first.\n\n"
        "Focus on: {technical_focus}."
    )


class SentimentAnalystWorker(BaseWorker):
    """Social sentiment specialist."""

    participant = Participant.SENTIMENT_ANALYST
    namespace = "sentiment"
    description = "Social sentiment, community mood, FOMO/FUD and Reddit discussion."
    system_prompt = (
        "You are a Sentiment Analyst specialist for {asset_label} markets.\n\n"
        "Your tools:\n{tools}\n\n"
        "**Your task**: Gather social sentiment data for the requested asset (e.g. {examples}), "
        "then provide insights on community perception.\n\n"
        "Focus on: bullish/bearish sentiment, FOMO/FUD indicators, community confidence."
    )


class MarketResearcherWorker(BaseWorker):
    """News and market intelligence specialist."""

    participant = Participant.MARKET_RESEARCHER
    namespace = "market"
    description = "News, regulation, market events, macro factors and broader market context."
    system_prompt = (
        "You are a Market Researcher specialist for {asset_label} markets.\n\n"
        "Your tools:\n{tools}\n\n"
        "**Your task**: Research market context, news, and external factors affecting the asset "
        "(e.g. {examples}). Use your tools, then summarize key insights.\n\n"
        "Focus on: {research_focus}."
    )


WORKER_CLASSES: Dict[Participant, Type[BaseWorker]] = {
    Participant.TECHNICAL_ANALYST: TechnicalAnalystWorker,
    Participant.SENTIMENT_ANALYST: SentimentAnalystWorker,
    Participant.MARKET_RESEARCHER: MarketResearcherWorker,
}


def create_workers(
    model: BaseChatModel,
    invoker: ToolInvoker,
    profile: MarketProfile,
) -> Dict[Participant, BaseWorker]:
    """Instantiate every specialist for a market.

    Args:
        model: Fast-tier chat model.
        invoker: Tool Invocation Layer for the market.
        profile: Market profile.

    Returns:
        Dict[Participant, BaseWorker]: Workers keyed by participant.
    """
    return {participant: worker_cls(model, invoker, profile) for participant, worker_cls in WORKER_CLASSES.items()}


def list_workers() -> List[Dict[str, str]]:
    """List all specialists with their namespaces and descriptions."""
    return [
        {"name": cls.participant.value, "namespace": cls.namespace, "description": cls.description}
        for cls in WORKER_CLASSES.values()
    ]
