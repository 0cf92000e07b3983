"""Research tools: Tavily web search and the market intelligence API."""

from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from typing import (
    Any,
    Dict,
    Hashable,
    List,
    Optional,
    Sequence,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
)

from app.core.config import settings
from app.core.langgraph.tools.base import (
    MarketTool,
    base_asset,
    normalize_query,
)
from app.core.langgraph.tools.http import (
    UpstreamClient,
    UpstreamError,
)


class WebSearchArgs(BaseModel):
    """Arguments for the web search tool."""

    query: str = Field(..., min_length=1, description="Search query for market news and updates")


class IntelligenceType(str, Enum):
    """Depth of a market intelligence report."""

    COMPREHENSIVE = "comprehensive"
    ALERTS = "alerts"
    NEWS = "news"


class IntelligenceArgs(BaseModel):
    """Arguments for the market intelligence tool."""

    symbol: str = Field(..., min_length=1, description="Symbol or pair, e.g. 'BTC/USD', 'AAPL', 'EUR/USD'")
    type: IntelligenceType = Field(
        default=IntelligenceType.COMPREHENSIVE,
        description="'comprehensive' (full analysis), 'alerts' (urgent warnings), 'news' (recent updates)",
    )


class WebSearchTool(MarketTool):
    """Tavily search restricted to a market's trusted news domains."""

    name = "web_search"
    args_schema = WebSearchArgs

    def __init__(
        self,
        include_domains: Sequence[str] = (),
        topic: str = "market",
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        max_results: int = 5,
    ):
        """Initialize the tool.

        Args:
            include_domains: News domains the search is restricted to.
            topic: Wording used in the tool description ("cryptocurrency", "stock", ...).
            base_url: Tavily base URL; defaults to settings.
            api_key: Tavily API key; defaults to settings.
            max_results: Maximum results returned to the model.
        """
        self.include_domains: List[str] = list(include_domains)
        self.topic = topic
        self.description = (
            f"Searches the web for {topic} news, articles, and updates. "
            "Use this to find recent news, regulatory changes, or market events."
        )
        self.base_url = (base_url or settings.TAVILY_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.TAVILY_API_KEY
        self.max_results = max_results

    def cache_key(self, args: WebSearchArgs) -> Tuple[Hashable, ...]:
        """Key on topic and normalized query; topics search different domains."""
        return (self.name, self.topic, normalize_query(args.query))

    async def run(self, client: UpstreamClient, args: WebSearchArgs) -> Dict[str, Any]:
        """Run the search and trim result snippets."""
        if not self.api_key:
            raise UpstreamError("TAVILY_API_KEY not configured")

        body: Dict[str, Any] = {
            "api_key": self.api_key,
            "query": args.query,
            "search_depth": "advanced",
            "max_results": self.max_results,
            "include_answer": True,
            "include_raw_content": False,
        }
        if self.include_domains:
            body["include_domains"] = self.include_domains

        data = await client.post_json(f"{self.base_url}/search", json=body)
        if not isinstance(data, dict):
            raise UpstreamError("Malformed payload: expected a JSON object")

        results = []
        for item in (data.get("results") or [])[: self.max_results]:
            content = item.get("content") or ""
            results.append(
                {
                    "title": item.get("title"),
                    "url": item.get("url"),
                    "content": content[:200] + ("..." if len(content) > 200 else ""),
                }
            )
        return {"query": args.query, "answer": data.get("answer") or "", "results": results}


class MarketIntelligenceTool(MarketTool):
    """Synthesized news, alerts and macro context for one asset."""

    name = "get_market_intelligence"
    description = (
        "Fetches comprehensive market intelligence for an asset including: recent news, "
        "regulatory updates, geopolitical events, market alerts, and macro analysis. "
        "Use this for broader market context or external factors affecting the asset."
    )
    args_schema = IntelligenceArgs

    def __init__(self, base_url: Optional[str] = None):
        """Initialize the tool.

        Args:
            base_url: Market intelligence API base URL; defaults to settings.
        """
        self.base_url = (base_url or settings.MARKET_INTELLIGENCE_API_URL).rstrip("/")

    def cache_key(self, args: IntelligenceArgs) -> Tuple[Hashable, ...]:
        """Key on base asset and report type."""
        return (self.name, base_asset(args.symbol), args.type.value)

    def error_context(self, args: IntelligenceArgs) -> Dict[str, Any]:
        """Echo base asset and report type on failure."""
        return {"symbol": base_asset(args.symbol), "type": args.type.value}

    async def run(self, client: UpstreamClient, args: IntelligenceArgs) -> Dict[str, Any]:
        """Fetch the intelligence report for the base asset of ``args.symbol``."""
        symbol = base_asset(args.symbol)
        data = await client.get_json(
            f"{self.base_url}/api/market-intelligence",
            params={"symbol": symbol, "type": args.type.value},
        )
        if not isinstance(data, dict):
            raise UpstreamError("Malformed payload: expected a JSON object")

        return {
            "symbol": symbol,
            "type": args.type.value,
            "analysis": data.get("synthesizedAnalysis") or data.get("analysis") or "",
            "alerts": data.get("alerts") or [],
            "news_count": len(data.get("results") or []),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
