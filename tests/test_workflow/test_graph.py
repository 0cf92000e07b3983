"""Integration tests for the advisor graph and its event stream."""

import json

import httpx
import pytest
from conftest import (
    ScriptedChatModel,
    route,
    tool_call,
)
from langchain_core.messages import AIMessage

from app.core.config import settings
from app.core.langgraph.tools import ToolInvoker
from app.core.langgraph.workflow.events import (
    AgentEvent,
    ErrorEvent,
    FinalEvent,
)
from app.core.langgraph.workflow.graph import AdvisorGraph
from app.schemas import Message

QUESTION = [Message(role="user", content="What's the RSI for BTC/USD?")]


def rsi_backend(request: httpx.Request) -> httpx.Response:
    """Twelve Data stand-in serving an RSI series."""
    if request.url.path.endswith("/rsi"):
        return httpx.Response(
            200,
            json={
                "meta": {"symbol": "BTC/USD", "indicator": {"name": "RSI"}},
                "values": [{"datetime": "2026-10-19", "rsi": "62.5"}, {"datetime": "2026-10-18", "rsi": "58.1"}],
                "status": "ok",
            },
        )
    return httpx.Response(404, json={"status": "error", "code": 404, "message": "not found"})


@pytest.fixture
def crypto_invoker(monkeypatch, crypto_profile, tool_cache, make_upstream):
    """Build an invoker factory for the real crypto tools over a mocked backend."""
    monkeypatch.setattr(settings, "TWELVEDATA_API_KEY", "test-key")

    def _make(handler):
        return ToolInvoker(crypto_profile.build_tools(), cache=tool_cache, client=make_upstream(handler))

    return _make


async def _collect(graph: AdvisorGraph):
    return [event async for event in graph.stream_events(QUESTION, "test-session")]


def _rsi_call() -> AIMessage:
    return AIMessage(
        content="",
        tool_calls=[tool_call("get_crypto_indicators", symbol="BTC/USD", indicator="rsi")],
    )


@pytest.mark.integration
class TestAdvisorGraphEndToEnd:
    """End-to-end runs with scripted models."""

    @pytest.mark.asyncio
    async def test_rsi_question(self, crypto_profile, crypto_invoker):
        """Test the RSI scenario: technical specialist, then exactly one final frame."""
        smart = ScriptedChatModel(
            decisions=[route("TechnicalAnalyst", "RSI is a technical indicator"), route("FINISH", "RSI collected")],
            responses=[AIMessage(content="## RSI\nBTC/USD daily RSI is 62.5, neutral to bullish.")],
        )
        fast = ScriptedChatModel(responses=[_rsi_call()])
        graph = AdvisorGraph(crypto_profile, smart, fast, crypto_invoker(rsi_backend))

        events = await _collect(graph)

        assert [(e.type, getattr(e, "agent", None), getattr(e, "status", None)) for e in events] == [
            ("agent", "TechnicalAnalyst", "routing"),
            ("agent", "TechnicalAnalyst", "working"),
            ("agent", "FinalResponse", "routing"),
            ("final", "FinalResponse", "complete"),
        ]
        final = events[-1]
        assert "62.5" in final.message
        assert final.data["technical"]["get_crypto_indicators"]["values"][0]["rsi"] == "62.5"

        synthesis_prompt = smart.calls[-1][0].content
        assert "62.5" in synthesis_prompt

    @pytest.mark.asyncio
    async def test_failing_tool_still_reaches_final(self, crypto_profile, crypto_invoker):
        """Test error isolation: a backend that always fails does not stop the run."""
        smart = ScriptedChatModel(
            decisions=[route("TechnicalAnalyst"), route("FINISH")],
            responses=[AIMessage(content="RSI data is unavailable right now.")],
        )
        fast = ScriptedChatModel(responses=[_rsi_call()])
        graph = AdvisorGraph(crypto_profile, smart, fast, crypto_invoker(lambda r: httpx.Response(500, text="down")))

        events = await _collect(graph)

        assert isinstance(events[-1], FinalEvent)
        payload = events[-1].data["technical"]["get_crypto_indicators"]
        assert payload["error"].startswith("API error: 500")
        assert payload["symbol"] == "BTC/USD"

    @pytest.mark.asyncio
    async def test_rate_limited_backend_recovers(self, crypto_profile, crypto_invoker, recorded_sleeps):
        """Test that two 429s then a 200 give the worker the real payload."""
        statuses = iter([429, 429])

        def flaky(request: httpx.Request) -> httpx.Response:
            status = next(statuses, None)
            if status is not None:
                return httpx.Response(status, json={})
            return rsi_backend(request)

        smart = ScriptedChatModel(
            decisions=[route("TechnicalAnalyst"), route("FINISH")],
            responses=[AIMessage(content="RSI is 62.5")],
        )
        fast = ScriptedChatModel(responses=[_rsi_call()])
        graph = AdvisorGraph(crypto_profile, smart, fast, crypto_invoker(flaky))

        events = await _collect(graph)

        payload = events[-1].data["technical"]["get_crypto_indicators"]
        assert "error" not in payload
        assert payload["values"][0]["rsi"] == "62.5"
        assert recorded_sleeps == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_visits_are_capped_at_three(self, crypto_profile, static_invoker):
        """Test that a supervisor that never finishes is cut off after three visits."""
        smart = ScriptedChatModel(
            decisions=[route("SentimentAnalyst")] * 3,
            responses=[AIMessage(content="Sentiment summary")],
        )
        fast = ScriptedChatModel(
            responses=[
                AIMessage(content="", tool_calls=[tool_call("get_reddit_sentiment", f"c{i}", symbol="BTC")])
                for i in range(3)
            ]
        )
        graph = AdvisorGraph(crypto_profile, smart, fast, static_invoker, max_agent_calls=3)

        events = await _collect(graph)

        working = [e for e in events if isinstance(e, AgentEvent) and e.status == "working"]
        assert len(working) == 3
        assert len(smart.structured_calls) == 3
        assert isinstance(events[-1], FinalEvent)
        assert "Maximum of 3 specialist calls reached" in events[-2].message

    @pytest.mark.asyncio
    async def test_findings_accumulate_across_specialists(self, crypto_profile, static_invoker):
        """Test that each visited specialist leaves its namespace in data."""
        smart = ScriptedChatModel(
            decisions=[route("TechnicalAnalyst"), route("SentimentAnalyst"), route("FINISH")],
            responses=[AIMessage(content="Combined view")],
        )
        fast = ScriptedChatModel(
            responses=[
                AIMessage(content="", tool_calls=[tool_call("get_crypto_price", symbol="BTC/USD")]),
                AIMessage(content="", tool_calls=[tool_call("get_reddit_sentiment", symbol="BTC")]),
            ]
        )
        graph = AdvisorGraph(crypto_profile, smart, fast, static_invoker)

        events = await _collect(graph)

        assert set(events[-1].data) == {"technical", "sentiment"}
        prompt = smart.calls[-1][0].content
        assert "### technical" in prompt and "### sentiment" in prompt


@pytest.mark.integration
class TestAdvisorGraphFailures:
    """Runs that must end with a single error frame."""

    @pytest.mark.asyncio
    async def test_model_failure_ends_with_error(self, crypto_profile, static_invoker):
        """Test that a worker model failure becomes one terminal error event."""
        smart = ScriptedChatModel(decisions=[route("TechnicalAnalyst")])
        fast = ScriptedChatModel(responses=[RuntimeError("model provider returned 503")])
        graph = AdvisorGraph(crypto_profile, smart, fast, static_invoker)

        events = await _collect(graph)

        assert [e.type for e in events] == ["agent", "error"]
        assert "model provider returned 503" in events[-1].error

    @pytest.mark.asyncio
    async def test_invalid_route_ends_with_error(self, crypto_profile, static_invoker):
        """Test that an out-of-enum routing choice surfaces as an error event."""
        smart = ScriptedChatModel(decisions=[{"next": "Astrologer", "reasoning": "?"}])
        graph = AdvisorGraph(crypto_profile, smart, ScriptedChatModel(), static_invoker)

        events = await _collect(graph)

        assert len(events) == 1
        assert isinstance(events[0], ErrorEvent)
        assert "invalid route" in events[0].error

    @pytest.mark.asyncio
    async def test_timeout_ends_with_error(self, crypto_profile, static_invoker):
        """Test that the wall-clock limit ends a stuck run."""
        smart = ScriptedChatModel(decisions=[route("TechnicalAnalyst")])
        fast = ScriptedChatModel(responses=[AIMessage(content="late")], delay=5.0)
        graph = AdvisorGraph(crypto_profile, smart, fast, static_invoker, timeout_seconds=0.2)

        events = await _collect(graph)

        assert isinstance(events[-1], ErrorEvent)
        assert "exceeded" in events[-1].error
        assert sum(e.type in ("final", "error") for e in events) == 1

    @pytest.mark.asyncio
    async def test_frames_are_valid_sse(self, crypto_profile, static_invoker):
        """Test that every event of a run frames as ``data: <json>``."""
        smart = ScriptedChatModel(decisions=[route("FINISH", "Greeting only")], responses=[AIMessage(content="Hi!")])
        graph = AdvisorGraph(crypto_profile, smart, ScriptedChatModel(), static_invoker)

        for event in await _collect(graph):
            frame = event.to_sse()
            assert frame.startswith("data: ") and frame.endswith("\n\n")
            json.loads(frame[len("data: ") : -2])

    @pytest.mark.asyncio
    async def test_detached_consumer_stops_further_participants(self, crypto_profile, static_invoker):
        """Test that closing the event stream after the first event runs no further participant."""
        smart = ScriptedChatModel(
            decisions=[route("TechnicalAnalyst"), route("FINISH")],
            responses=[AIMessage(content="never sent")],
        )
        fast = ScriptedChatModel(
            responses=[AIMessage(content="", tool_calls=[tool_call("get_crypto_price", symbol="BTC/USD")])]
        )
        graph = AdvisorGraph(crypto_profile, smart, fast, static_invoker)

        stream = graph.stream_events(QUESTION, "test-session")
        first = await anext(stream)
        await stream.aclose()

        assert isinstance(first, AgentEvent) and first.status == "routing"
        assert len(smart.structured_calls) == 1
        assert fast.calls == []
        assert smart.calls == []
