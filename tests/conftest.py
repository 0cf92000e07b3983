"""Shared test fixtures for the test suite."""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LANGFUSE_TRACING_ENABLED", "false")

import asyncio  # noqa: E402
from typing import (  # noqa: E402
    Any,
    Callable,
    Dict,
    List,
    Optional,
)

import httpx  # noqa: E402
import pytest  # noqa: E402
from langchain_core.messages import AIMessage  # noqa: E402
from pydantic import ValidationError  # noqa: E402

from app.core.langgraph.tools import (  # noqa: E402
    MarketTool,
    RetryPolicy,
    ToolCache,
    ToolInvoker,
    UpstreamClient,
    normalize_symbol,
)
from app.core.langgraph.tools.market_data import SymbolArgs  # noqa: E402
from app.core.langgraph.workflow import get_market_profile  # noqa: E402
from app.core.langgraph.workflow.schema import RouteDecision  # noqa: E402


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class _StructuredRunner:
    """Mimics ``with_structured_output(..., include_raw=True)``."""

    def __init__(self, owner: "ScriptedChatModel"):
        self.owner = owner

    async def ainvoke(self, messages: List[Any], config: Optional[Dict] = None, **kwargs: Any) -> Dict[str, Any]:
        self.owner.structured_calls.append(messages)
        item = self.owner.decisions.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, RouteDecision):
            return {"raw": AIMessage(content=""), "parsed": item, "parsing_error": None}
        try:
            return {"raw": AIMessage(content=""), "parsed": RouteDecision.model_validate(item), "parsing_error": None}
        except ValidationError as e:
            return {"raw": AIMessage(content=str(item)), "parsed": None, "parsing_error": e}


class ScriptedChatModel:
    """Chat model stand-in that replays scripted responses.

    ``responses`` feed ``ainvoke``; ``decisions`` feed the structured-output
    runner. An Exception in either list is raised instead of returned.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        decisions: Optional[List[Any]] = None,
        delay: float = 0.0,
    ):
        self.responses = list(responses or [])
        self.decisions = list(decisions or [])
        self.delay = delay
        self.calls: List[List[Any]] = []
        self.structured_calls: List[List[Any]] = []
        self.bound_tools: List[Any] = []

    def bind_tools(self, tools: List[Any], **kwargs: Any) -> "ScriptedChatModel":
        self.bound_tools = list(tools)
        return self

    def with_structured_output(self, schema: Any, include_raw: bool = False, **kwargs: Any) -> _StructuredRunner:
        return _StructuredRunner(self)

    async def ainvoke(self, messages: List[Any], config: Optional[Dict] = None, **kwargs: Any) -> AIMessage:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def route(target: str, reasoning: str = "next step") -> RouteDecision:
    """Build a routing decision."""
    return RouteDecision(next=target, reasoning=reasoning)


def tool_call(name: str, call_id: str = "call_1", **args: Any) -> Dict[str, Any]:
    """Build a LangChain-style tool call."""
    return {"name": name, "args": args, "id": call_id, "type": "tool_call"}


class StaticTool(MarketTool):
    """Tool returning a fixed payload, or raising a fixed error, and counting runs."""

    args_schema = SymbolArgs

    def __init__(
        self,
        name: str,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.description = f"Static tool {name}"
        self.payload = payload or {"value": 1}
        self.error = error
        self.delay = delay
        self.runs = 0

    async def run(self, client: UpstreamClient, args: SymbolArgs) -> Dict[str, Any]:
        self.runs += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {**self.payload, "symbol": normalize_symbol(args.symbol)}


@pytest.fixture
def fake_clock() -> FakeClock:
    """A clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def tool_cache(fake_clock) -> ToolCache:
    """An empty cache driven by the fake clock."""
    return ToolCache(clock=fake_clock)


@pytest.fixture
def recorded_sleeps() -> List[float]:
    """Backoff delays requested by the upstream client."""
    return []


@pytest.fixture
def make_upstream(recorded_sleeps) -> Callable[..., UpstreamClient]:
    """Factory for an UpstreamClient over an httpx.MockTransport handler.

    Backoff sleeps are recorded instead of awaited.
    """

    async def _sleep(seconds: float) -> None:
        recorded_sleeps.append(seconds)

    def _make(handler: Callable[[httpx.Request], httpx.Response], **policy: Any) -> UpstreamClient:
        retry_policy = RetryPolicy(**{"max_attempts": 3, "backoff_seconds": 10.0, **policy})
        return UpstreamClient(
            retry_policy=retry_policy,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            min_request_interval=0,
            sleep=_sleep,
        )

    return _make


@pytest.fixture
def crypto_profile():
    """The crypto market profile."""
    return get_market_profile("crypto")


@pytest.fixture
def static_tools(crypto_profile) -> Dict[str, StaticTool]:
    """A StaticTool for every tool name the crypto specialists use."""
    names = [name for tools in crypto_profile.worker_tools.values() for name in tools]
    return {name: StaticTool(name, payload={"source": name}) for name in names}


@pytest.fixture
def static_invoker(static_tools, tool_cache, make_upstream):
    """A ToolInvoker over the static crypto tools."""
    return ToolInvoker(static_tools.values(), cache=tool_cache, client=make_upstream(lambda r: httpx.Response(500)))
