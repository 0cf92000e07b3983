"""Unit tests for the upstream client and its retry policy."""

import asyncio

import httpx
import pytest
from conftest import FakeClock

from app.core.langgraph.tools import (
    RateLimitExceededError,
    RetryPolicy,
    UpstreamClient,
    UpstreamError,
)
from app.core.langgraph.tools.market_data import twelvedata_status


class TestRetryPolicy:
    """Tests for RetryPolicy validation."""

    def test_defaults(self):
        """Test the default policy: 3 attempts, 10s backoff, 429 only."""
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.backoff_seconds == 10.0
        assert policy.is_retryable(429)
        assert not policy.is_retryable(500)
        assert not policy.is_retryable(None)

    def test_rejects_zero_attempts(self):
        """Test that a policy needs at least one attempt."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_rejects_negative_backoff(self):
        """Test that backoff cannot be negative."""
        with pytest.raises(ValueError):
            RetryPolicy(backoff_seconds=-1)


class TestUpstreamClientRetries:
    """Tests for 429 retries and failure conversion."""

    @pytest.mark.asyncio
    async def test_succeeds_after_two_rate_limits(self, make_upstream, recorded_sleeps):
        """Test 429, 429, 200 succeeds on the third attempt."""
        statuses = iter([429, 429, 200])
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request.url.path)
            status = next(statuses)
            return httpx.Response(status, json={"price": "42"} if status == 200 else {"message": "slow down"})

        client = make_upstream(handler)
        payload = await client.get_json("https://api.example.com/quote")

        assert payload == {"price": "42"}
        assert len(attempts) == 3
        assert recorded_sleeps == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_raises_after_exhausting_retries(self, make_upstream, recorded_sleeps):
        """Test that a persistent 429 raises RateLimitExceededError after max attempts."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(429, json={})

        client = make_upstream(handler)
        with pytest.raises(RateLimitExceededError, match="Rate limit exceeded after maximum retries"):
            await client.get_json("https://api.example.com/quote")

        assert len(attempts) == 3
        assert recorded_sleeps == [10.0, 10.0]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, make_upstream, recorded_sleeps):
        """Test that a 500 fails immediately with the status in the message."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(1)
            return httpx.Response(500, text="internal boom")

        client = make_upstream(handler)
        with pytest.raises(UpstreamError) as exc_info:
            await client.get_json("https://api.example.com/quote")

        assert not isinstance(exc_info.value, RateLimitExceededError)
        assert exc_info.value.status_code == 500
        assert "API error: 500 - internal boom" in str(exc_info.value)
        assert len(attempts) == 1
        assert recorded_sleeps == []

    @pytest.mark.asyncio
    async def test_malformed_payload(self, make_upstream):
        """Test that a 200 with a non-JSON body is a hard failure."""
        client = make_upstream(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamError, match="Malformed payload"):
            await client.get_json("https://api.example.com/quote")

    @pytest.mark.asyncio
    async def test_transport_error(self, make_upstream):
        """Test that connection failures become UpstreamError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = make_upstream(handler)
        with pytest.raises(UpstreamError, match="failed"):
            await client.get_json("https://api.example.com/quote")

    @pytest.mark.asyncio
    async def test_in_body_rate_limit_is_retried(self, make_upstream, recorded_sleeps):
        """Test that a 200 carrying ``{"code": 429}`` is treated as a rate limit."""
        bodies = iter(
            [
                {"status": "error", "code": 429, "message": "You have run out of API credits"},
                {"symbol": "BTC/USD", "close": "64000"},
            ]
        )
        client = make_upstream(lambda request: httpx.Response(200, json=next(bodies)))

        payload = await client.get_json("https://api.example.com/quote", payload_status=twelvedata_status)

        assert payload == {"symbol": "BTC/USD", "close": "64000"}
        assert recorded_sleeps == [10.0]

    @pytest.mark.asyncio
    async def test_custom_policy(self, make_upstream, recorded_sleeps):
        """Test that the retryable set and attempt count come from the policy."""
        client = make_upstream(
            lambda request: httpx.Response(503, json={}),
            max_attempts=2,
            backoff_seconds=0.5,
            retryable_status_codes=frozenset({503}),
        )
        with pytest.raises(RateLimitExceededError):
            await client.get_json("https://api.example.com/quote")
        assert recorded_sleeps == [0.5]


class TestUpstreamClientPacing:
    """Tests for the per-host minimum request interval."""

    @staticmethod
    def _paced_client(sleeps, interval=0.3):
        clock = FakeClock(start=50.0)

        async def _sleep(seconds: float) -> None:
            sleeps.append(seconds)

        return UpstreamClient(
            retry_policy=RetryPolicy(),
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))),
            min_request_interval=interval,
            sleep=_sleep,
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_concurrent_batch_is_spaced(self):
        """Test that a gathered batch to one host gets one slot per interval, not one shared wait."""
        sleeps = []
        client = self._paced_client(sleeps)

        await asyncio.gather(*(client.get_json(f"https://api.example.com/quote?n={n}") for n in range(4)))

        assert sleeps == [pytest.approx(0.3), pytest.approx(0.6), pytest.approx(0.9)]

    @pytest.mark.asyncio
    async def test_hosts_are_paced_independently(self):
        """Test that requests to different hosts do not wait on each other."""
        sleeps = []
        client = self._paced_client(sleeps)

        await asyncio.gather(
            client.get_json("https://api.example.com/quote"),
            client.get_json("https://search.example.com/search"),
        )

        assert sleeps == []

    @pytest.mark.asyncio
    async def test_zero_interval_disables_pacing(self):
        """Test that pacing is off by default in tests."""
        sleeps = []
        client = self._paced_client(sleeps, interval=0)

        await asyncio.gather(*(client.get_json("https://api.example.com/quote") for _ in range(3)))

        assert sleeps == []
