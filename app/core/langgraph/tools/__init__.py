"""Market tools and the Tool Invocation Layer used by the advisor workers.

This package contains the tools the specialist workers can call (quotes,
technical indicators, symbol search, social sentiment, web search, market
intelligence) and the invocation layer around them: a shared TTL cache, a
shared upstream HTTP client with one retry policy, and the ``ToolInvoker``
that turns upstream failures into error payloads.
"""

from app.core.langgraph.tools.base import (
    MarketTool,
    base_asset,
    normalize_query,
    normalize_symbol,
)
from app.core.langgraph.tools.cache import ToolCache
from app.core.langgraph.tools.http import (
    RateLimitExceededError,
    RetryPolicy,
    UpstreamClient,
    UpstreamError,
)
from app.core.langgraph.tools.invoker import ToolInvoker
from app.core.langgraph.tools.market_data import (
    Indicator,
    IndicatorTool,
    QuoteTool,
    SymbolSearchTool,
)
from app.core.langgraph.tools.search import (
    MarketIntelligenceTool,
    WebSearchTool,
)
from app.core.langgraph.tools.sentiment import RedditSentimentTool

__all__ = [
    "MarketTool",
    "base_asset",
    "normalize_query",
    "normalize_symbol",
    "ToolCache",
    "RateLimitExceededError",
    "RetryPolicy",
    "UpstreamClient",
    "UpstreamError",
    "ToolInvoker",
    "Indicator",
    "IndicatorTool",
    "QuoteTool",
    "SymbolSearchTool",
    "MarketIntelligenceTool",
    "WebSearchTool",
    "RedditSentimentTool",
]
