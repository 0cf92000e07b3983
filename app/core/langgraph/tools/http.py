"""Shared upstream HTTP client with an explicit retry policy.

Every tool backend call goes through ``UpstreamClient.request_json`` so the
429 handling lives in one place:

- a retryable status (429 by default) waits ``backoff_seconds`` and tries
  again, up to ``max_attempts`` attempts in total;
- the last failed retryable attempt raises ``RateLimitExceededError``;
- any other non-2xx status, transport failure or non-JSON body raises
  ``UpstreamError`` immediately.

Callers (the ToolInvoker) turn both errors into ``{"error": ...}`` payloads.
"""

import asyncio
import time
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Optional,
)
from urllib.parse import urlsplit

import httpx

from app.core.config import settings
from app.core.logging import logger


class UpstreamError(Exception):
    """A tool backend answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize the error.

        Args:
            message: Human-readable description.
            status_code: HTTP (or in-body) status code, if known.
        """
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceededError(UpstreamError):
    """The backend kept answering 429 after all retry attempts."""


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy shared by every tool call."""

    max_attempts: int = 3
    backoff_seconds: float = 10.0
    retryable_status_codes: FrozenSet[int] = field(default_factory=lambda: frozenset({429}))

    def __post_init__(self):
        """Validate the policy bounds."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must not be negative")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        """Build the policy from application settings."""
        return cls(
            max_attempts=settings.TOOL_MAX_ATTEMPTS,
            backoff_seconds=settings.TOOL_RETRY_BACKOFF_SECONDS,
            retryable_status_codes=frozenset(settings.TOOL_RETRYABLE_STATUS_CODES),
        )

    def is_retryable(self, status_code: Optional[int]) -> bool:
        """Return True if ``status_code`` should be retried."""
        return status_code is not None and status_code in self.retryable_status_codes


PayloadStatus = Callable[[Any], Optional[int]]


class UpstreamClient:
    """Thin wrapper around a shared ``httpx.AsyncClient``.

    Besides retries it keeps a per-host "last request" map so backends with a
    requests-per-minute quota can be paced with ``min_request_interval``.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        min_request_interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the client.

        Args:
            retry_policy: Policy for retryable statuses; defaults to settings.
            client: Preconfigured httpx client (tests pass a MockTransport one).
            timeout: Request timeout in seconds when no client is given.
            min_request_interval: Minimum seconds between requests to one host.
            sleep: Awaitable used for backoff and pacing; injectable for tests.
            clock: Monotonic clock used for pacing.
        """
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._client = client
        self._timeout = timeout if timeout is not None else settings.TOOL_HTTP_TIMEOUT_SECONDS
        self._min_interval = (
            min_request_interval if min_request_interval is not None else settings.TOOL_MIN_REQUEST_INTERVAL_SECONDS
        )
        self._sleep = sleep
        self._clock = clock
        self._last_request_at: Dict[str, float] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _pace(self, url: str) -> None:
        """Wait for this request's slot, at least ``min_request_interval`` after the previous one to this host.

        The slot is reserved before sleeping so concurrent callers queue up behind each other.
        """
        if self._min_interval <= 0:
            return
        host = urlsplit(url).netloc
        now = self._clock()
        last = self._last_request_at.get(host)
        slot = now if last is None else max(now, last + self._min_interval)
        self._last_request_at[host] = slot
        if slot > now:
            await self._sleep(slot - now)

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        payload_status: Optional[PayloadStatus] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            url: Absolute URL.
            params: Query parameters.
            json: JSON request body.
            headers: Extra request headers.
            payload_status: Extracts an in-body status code for backends that
                report errors with HTTP 200 (e.g. ``{"code": 429}``).

        Returns:
            Any: The decoded JSON payload.

        Raises:
            RateLimitExceededError: Retryable status persisted for every attempt.
            UpstreamError: Any other failure.
        """
        policy = self.retry_policy
        client = self._get_client()

        for attempt in range(1, policy.max_attempts + 1):
            await self._pace(url)
            try:
                response = await client.request(method, url, params=params, json=json, headers=headers)
            except httpx.HTTPError as e:
                logger.warning("upstream_request_failed", url=url, error=str(e))
                raise UpstreamError(f"Request to {urlsplit(url).netloc} failed: {e}") from e

            status_code: Optional[int] = response.status_code
            payload: Any = None
            if response.is_success:
                try:
                    payload = response.json()
                except ValueError as e:
                    raise UpstreamError("Malformed payload: response body is not JSON", response.status_code) from e
                if payload_status is not None:
                    body_status = payload_status(payload)
                    status_code = body_status if body_status is not None else status_code

            if policy.is_retryable(status_code):
                if attempt == policy.max_attempts:
                    logger.warning("upstream_rate_limit_exhausted", url=url, attempts=attempt)
                    raise RateLimitExceededError("Rate limit exceeded after maximum retries", status_code)
                logger.warning(
                    "upstream_rate_limited",
                    url=url,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    backoff_seconds=policy.backoff_seconds,
                )
                await self._sleep(policy.backoff_seconds)
                continue

            if not response.is_success:
                raise UpstreamError(f"API error: {response.status_code} - {response.text[:200]}", response.status_code)

            return payload

        raise UpstreamError("Retry loop exited without a response")

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """Shortcut for ``request_json("GET", ...)``."""
        return await self.request_json("GET", url, **kwargs)

    async def post_json(self, url: str, **kwargs: Any) -> Any:
        """Shortcut for ``request_json("POST", ...)``."""
        return await self.request_json("POST", url, **kwargs)

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
