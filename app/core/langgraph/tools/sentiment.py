"""Social sentiment tool backed by the Reddit sentiment API."""

from datetime import (
    datetime,
    timezone,
)
from typing import (
    Any,
    Dict,
    Hashable,
    Optional,
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
)
from app.core.langgraph.tools.http import (
    UpstreamClient,
    UpstreamError,
)


class SentimentArgs(BaseModel):
    """Arguments for the sentiment tool."""

    symbol: str = Field(
        ...,
        min_length=1,
        description="Symbol or pair (e.g. 'BTC/USD', 'TSLA'); pairs are reduced to their base asset",
    )


class RedditSentimentTool(MarketTool):
    """Bullish / bearish / neutral split of recent Reddit posts for one asset."""

    name = "get_reddit_sentiment"
    description = (
        "Analyzes social sentiment from Reddit communities for a specific asset. "
        "Returns bullish/bearish percentages, post count, and overall sentiment. "
        "Use this when users ask about community sentiment, social trends, or FOMO/FUD."
    )
    args_schema = SentimentArgs

    def __init__(self, base_url: Optional[str] = None):
        """Initialize the tool.

        Args:
            base_url: Sentiment API base URL; defaults to settings.
        """
        self.base_url = (base_url or settings.SENTIMENT_API_URL).rstrip("/")

    def cache_key(self, args: SentimentArgs) -> Tuple[Hashable, ...]:
        """Key on the base asset so ``BTC/USD`` and ``BTC`` share an entry."""
        return (self.name, base_asset(args.symbol))

    def error_context(self, args: SentimentArgs) -> Dict[str, Any]:
        """Echo the base asset on failure."""
        return {"symbol": base_asset(args.symbol)}

    async def run(self, client: UpstreamClient, args: SentimentArgs) -> Dict[str, Any]:
        """Fetch the sentiment summary for the base asset of ``args.symbol``."""
        symbol = base_asset(args.symbol)
        data = await client.get_json(f"{self.base_url}/api/reddit", params={"symbol": symbol})
        if not isinstance(data, dict):
            raise UpstreamError("Malformed payload: expected a JSON object")

        return {
            "symbol": symbol,
            "bullish_percentage": data.get("bullish_percentage", 0),
            "bearish_percentage": data.get("bearish_percentage", 0),
            "neutral_percentage": data.get("neutral_percentage", 0),
            "total_posts": data.get("total_posts", 0),
            "overall_sentiment": data.get("overall_sentiment", "neutral"),
            "confidence": data.get("confidence", "low"),
            "analysis": data.get("analysis", "No detailed analysis available"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
