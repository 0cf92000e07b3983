"""Advisor graph: supervisor-routed specialists with a final synthesizer.

Graph structure:
    START → Supervisor → (TechnicalAnalyst | SentimentAnalyst | MarketResearcher) → Supervisor
          → ... → FinalResponse → END

One run is strictly sequential. The Supervisor forces ``FinalResponse``
once three specialist visits have been made, so every run terminates.
``stream_events`` drives the compiled graph with ``stream_mode="values"``
and turns every state into a progress event.
"""

import asyncio
from contextlib import aclosing
from typing import (
    AsyncGenerator,
    Dict,
    List,
    Optional,
)

from langchain_core.language_models.chat_models import BaseChatModel
from langgraph.graph import (
    END,
    START,
    StateGraph,
)
from langgraph.graph.state import CompiledStateGraph

from app.core.config import settings
from app.core.langgraph.agents.workers import create_workers
from app.core.langgraph.base import BaseAgentMixin
from app.core.langgraph.tools import (
    ToolCache,
    ToolInvoker,
    UpstreamClient,
)
from app.core.langgraph.workflow.events import (
    ProgressEmitter,
    ProgressEvent,
)
from app.core.langgraph.workflow.profiles import (
    Market,
    MarketProfile,
    get_market_profile,
)
from app.core.langgraph.workflow.schema import (
    WORKER_PARTICIPANTS,
    AdvisorState,
    Participant,
)
from app.core.langgraph.workflow.supervisor import Supervisor
from app.core.langgraph.workflow.synthesizer import FinalSynthesizer
from app.core.logging import logger
from app.schemas import Message
from app.services.llm import (
    LLMRegistry,
    ModelTier,
)


class AdvisorTimeoutError(TimeoutError):
    """The run did not finish within its wall-clock limit."""


class AdvisorGraph(BaseAgentMixin):
    """Multi-agent advisor for one market."""

    def __init__(
        self,
        profile: MarketProfile,
        smart_model: BaseChatModel,
        fast_model: BaseChatModel,
        invoker: ToolInvoker,
        max_agent_calls: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """Initialize the AdvisorGraph.

        Args:
            profile: Market profile.
            smart_model: Model for the Supervisor and the Final Synthesizer.
            fast_model: Model for the specialists.
            invoker: Tool Invocation Layer for this market.
            max_agent_calls: Maximum specialist calls per run; defaults to settings.
            timeout_seconds: Wall-clock limit per run; defaults to settings.
        """
        self.profile = profile
        self.invoker = invoker
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.ADVISOR_TIMEOUT_SECONDS
        self.supervisor = Supervisor(smart_model, profile, max_agent_calls=max_agent_calls)
        self.workers = create_workers(fast_model, invoker, profile)
        self.synthesizer = FinalSynthesizer(smart_model, profile)
        self._graph: Optional[CompiledStateGraph] = None
        logger.info(
            "advisor_graph_initialized",
            market=profile.market.value,
            tools=invoker.tool_names,
            max_agent_calls=self.supervisor.max_agent_calls,
        )

    # ─── Graph Builder ─────────────────────────────────────────────

    def _route_from_supervisor(self, state: AdvisorState) -> str:
        return Participant(state.next).value

    def create_graph(self) -> CompiledStateGraph:
        """Create and compile the advisor LangGraph."""
        if self._graph is not None:
            return self._graph

        builder = StateGraph(AdvisorState)
        builder.add_node(Participant.SUPERVISOR.value, self.supervisor)
        for participant, worker in self.workers.items():
            builder.add_node(participant.value, worker)
        builder.add_node(Participant.FINAL_RESPONSE.value, self.synthesizer)

        builder.add_edge(START, Participant.SUPERVISOR.value)
        targets = [p.value for p in WORKER_PARTICIPANTS] + [Participant.FINAL_RESPONSE.value]
        builder.add_conditional_edges(
            Participant.SUPERVISOR.value,
            self._route_from_supervisor,
            {target: target for target in targets},
        )
        for participant in WORKER_PARTICIPANTS:
            builder.add_edge(participant.value, Participant.SUPERVISOR.value)
        builder.add_edge(Participant.FINAL_RESPONSE.value, END)

        self._graph = builder.compile(name=f"{settings.PROJECT_NAME} {self.profile.market.value} advisor")
        logger.info("advisor_graph_created", market=self.profile.market.value)
        return self._graph

    # ─── Public API ────────────────────────────────────────────────

    async def stream_events(self, messages: List[Message], session_id: str) -> AsyncGenerator[ProgressEvent, None]:
        """Run the advisor and yield progress events as they happen.

        The sequence always ends with exactly one ``final`` or ``error``
        event. Closing the generator early stops the underlying run.

        Args:
            messages: Conversation history, already truncated by the caller.
            session_id: Identifier of this run, used for logging and tracing.

        Yields:
            ProgressEvent: Agent events, then one final or error event.
        """
        graph = self.create_graph()
        initial = self._to_langchain_messages(messages)
        emitter = ProgressEmitter(initial_message_count=len(initial), status_messages=self.profile.status_messages)
        config = self._build_run_config(session_id, market=self.profile.market.value)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        logger.info(
            "advisor_run_started",
            session_id=session_id,
            market=self.profile.market.value,
            message_count=len(initial),
        )
        try:
            async with aclosing(graph.astream({"messages": initial}, config, stream_mode="values")) as stream:
                while not emitter.closed:
                    remaining = deadline - loop.time()
                    try:
                        if remaining <= 0:
                            raise asyncio.TimeoutError
                        state = await asyncio.wait_for(anext(stream), remaining)
                    except StopAsyncIteration:
                        break
                    except asyncio.TimeoutError as e:
                        raise AdvisorTimeoutError(f"Advisor run exceeded {self.timeout_seconds:g} seconds") from e

                    event = emitter.observe(state)
                    if event is not None:
                        yield event
        except Exception as e:
            logger.exception("advisor_run_failed", session_id=session_id, error=str(e))
            if not emitter.closed:
                yield emitter.error(str(e) or type(e).__name__)
            return

        if not emitter.closed:
            logger.error("advisor_run_ended_without_answer", session_id=session_id)
            yield emitter.error("The advisor run ended without a final response")
            return

        logger.info("advisor_run_completed", session_id=session_id, market=self.profile.market.value)


def create_advisor_graph(
    market: Market | str,
    cache: ToolCache,
    client: UpstreamClient,
    smart_model: Optional[BaseChatModel] = None,
    fast_model: Optional[BaseChatModel] = None,
) -> AdvisorGraph:
    """Build the advisor for a market on a shared cache and upstream client.

    Args:
        market: Market to serve.
        cache: Process-wide tool cache.
        client: Process-wide upstream HTTP client.
        smart_model: Optional override for the smart tier.
        fast_model: Optional override for the fast tier.

    Returns:
        AdvisorGraph: The advisor for ``market``.

    Raises:
        KeyError: If the market is unknown.
    """
    profile = get_market_profile(market)
    invoker = ToolInvoker(profile.build_tools(), cache=cache, client=client)
    return AdvisorGraph(
        profile=profile,
        smart_model=smart_model or LLMRegistry.get(ModelTier.SMART),
        fast_model=fast_model or LLMRegistry.get(ModelTier.FAST),
        invoker=invoker,
    )


class AdvisorRegistry:
    """Lazily built advisors, one per market, sharing one cache and client."""

    def __init__(self, cache: Optional[ToolCache] = None, client: Optional[UpstreamClient] = None):
        """Initialize the registry.

        Args:
            cache: Shared tool cache; a new one if omitted.
            client: Shared upstream client; a new one if omitted.
        """
        self.cache = cache or ToolCache()
        self.client = client or UpstreamClient()
        self._advisors: Dict[Market, AdvisorGraph] = {}

    def get(self, market: Market | str) -> AdvisorGraph:
        """Get the advisor for a market, building it on first use.

        Raises:
            KeyError: If the market is unknown.
        """
        profile = get_market_profile(market)
        if profile.market not in self._advisors:
            self._advisors[profile.market] = create_advisor_graph(profile.market, self.cache, self.client)
        return self._advisors[profile.market]

    async def aclose(self) -> None:
        """Release the shared upstream client."""
        await self.client.aclose()
        self._advisors.clear()
