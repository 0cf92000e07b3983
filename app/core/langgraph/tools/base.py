"""Base interface for market tools.

A market tool wraps one external data source. It declares the argument
schema the model sees, how its arguments map to a cache key, how long a
result stays fresh, and how to fetch a JSON-serializable payload through
the shared ``UpstreamClient``. Caching, retries and error absorption are
not the tool's job; ``ToolInvoker`` owns them.
"""

from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Dict,
    Hashable,
    Tuple,
    Type,
)

from pydantic import BaseModel

from app.core.config import settings
from app.core.langgraph.tools.http import UpstreamClient


def normalize_symbol(symbol: str) -> str:
    """Normalize a ticker or pair for cache keys and upstream calls (``" btc/usd "`` → ``"BTC/USD"``)."""
    return symbol.strip().upper()


def base_asset(symbol: str) -> str:
    """Return the base asset of a pair (``"BTC/USD"`` → ``"BTC"``)."""
    return normalize_symbol(symbol).split("/")[0]


def normalize_query(query: str) -> str:
    """Collapse whitespace and case so equivalent search queries share a cache entry."""
    return " ".join(query.lower().split())


class MarketTool(ABC):
    """Abstract base class for all tools bound to the specialist workers."""

    name: str = "market_tool"
    description: str = "A market data tool."
    args_schema: Type[BaseModel]
    ttl_seconds: float = settings.TOOL_CACHE_TTL_SECONDS

    def cache_key(self, args: BaseModel) -> Tuple[Hashable, ...]:
        """Build the cache key for validated arguments.

        The default keys on the normalized ``symbol`` argument; tools with a
        qualifier (indicator, report type) or a free-text query override this.
        """
        return (self.name, normalize_symbol(getattr(args, "symbol")))

    def error_context(self, args: BaseModel) -> Dict[str, Any]:
        """Fields echoed next to ``error`` so a failed payload still says what was asked."""
        return args.model_dump(mode="json")

    @abstractmethod
    async def run(self, client: UpstreamClient, args: BaseModel) -> Dict[str, Any]:
        """Fetch and shape the payload.

        Args:
            client: Shared upstream HTTP client.
            args: Arguments validated against ``args_schema``.

        Returns:
            Dict[str, Any]: JSON-serializable payload.

        Raises:
            UpstreamError: When the backend fails or answers with an error body.
        """

    def __repr__(self) -> str:
        """Return a string representation of the tool."""
        return f"<{self.__class__.__name__} name={self.name!r} ttl={self.ttl_seconds}>"
