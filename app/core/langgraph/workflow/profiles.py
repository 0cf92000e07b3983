"""Market profiles for the advisor workflow.

All markets share one graph topology (supervisor, three specialists, final
synthesizer). A profile supplies what differs between them: the asset
wording used in prompts, the Twelve Data tool names for the technical
specialist, and the news domains the researcher searches.
"""

from dataclasses import (
    dataclass,
    field,
)
from enum import Enum
from typing import (
    Dict,
    List,
    Tuple,
)

from app.core.langgraph.tools import (
    IndicatorTool,
    MarketIntelligenceTool,
    MarketTool,
    QuoteTool,
    RedditSentimentTool,
    SymbolSearchTool,
    WebSearchTool,
)
from app.core.langgraph.workflow.schema import Participant


class Market(str, Enum):
    """Markets with a dedicated advisor."""

    CRYPTO = "crypto"
    STOCK = "stock"
    FOREX = "forex"


@dataclass(frozen=True)
class MarketProfile:
    """Everything market-specific about an advisor run."""

    market: Market
    asset_label: str
    example_symbols: Tuple[str, ...]
    quote_tool: str
    quote_description: str
    indicator_tool: str
    news_domains: Tuple[str, ...]
    technical_focus: str
    research_focus: str
    status_messages: Dict[Participant, str] = field(default_factory=dict)

    @property
    def worker_tools(self) -> Dict[Participant, List[str]]:
        """Tool names bound to each specialist."""
        return {
            Participant.TECHNICAL_ANALYST: [self.quote_tool, self.indicator_tool, "search_symbols"],
            Participant.SENTIMENT_ANALYST: ["get_reddit_sentiment"],
            Participant.MARKET_RESEARCHER: ["web_search", "get_market_intelligence"],
        }

    def build_tools(self) -> List[MarketTool]:
        """Instantiate every tool this market's specialists may call."""
        examples = ", ".join(self.example_symbols)
        return [
            QuoteTool(
                name=self.quote_tool,
                description=(
                    f"{self.quote_description} Use this for price queries, volume, daily performance "
                    f"and trading range. Example symbols: {examples}"
                ),
            ),
            IndicatorTool(
                name=self.indicator_tool,
                description=(
                    f"Fetches one technical indicator for a {self.asset_label}. Supports: RSI (momentum), "
                    "MACD (trend), EMA (moving average), BBANDS (volatility), ATR (volatility), "
                    "OBV (volume), SUPERTREND, STOCH, ADX (trend strength). Call once per indicator."
                ),
            ),
            SymbolSearchTool(
                name="search_symbols",
                description=(
                    f"Looks up the ticker for a {self.asset_label} by name (e.g. 'Bitcoin', 'Apple', "
                    "'Euro'). Use this only when the user did not give a symbol."
                ),
            ),
            RedditSentimentTool(),
            WebSearchTool(include_domains=self.news_domains, topic=self.asset_label),
            MarketIntelligenceTool(),
        ]


_WORKING = {
    Participant.TECHNICAL_ANALYST: "Analyzing price and technical indicators...",
    Participant.SENTIMENT_ANALYST: "Analyzing social sentiment...",
    Participant.MARKET_RESEARCHER: "Researching market intelligence...",
}

MARKET_PROFILES: Dict[Market, MarketProfile] = {
    Market.CRYPTO: MarketProfile(
        market=Market.CRYPTO,
        asset_label="cryptocurrency",
        example_symbols=("BTC/USD", "ETH/USD", "SOL/USD"),
        quote_tool="get_crypto_price",
        quote_description="Fetches real-time cryptocurrency price data including price, change, change percentage and volume.",
        indicator_tool="get_crypto_indicators",
        news_domains=(
            "coindesk.com",
            "cointelegraph.com",
            "decrypt.co",
            "bloomberg.com",
            "reuters.com",
            "forbes.com",
        ),
        technical_focus="price action, momentum, trends, volatility, and key technical levels",
        research_focus="recent news, regulatory changes, macro factors, market alerts, adoption trends",
        status_messages=_WORKING,
    ),
    Market.STOCK: MarketProfile(
        market=Market.STOCK,
        asset_label="US stock",
        example_symbols=("AAPL", "TSLA", "MSFT", "NVDA"),
        quote_tool="get_stock_quote",
        quote_description="Gets real-time stock quote data including price, volume, daily change and trading range for NASDAQ/NYSE listings.",
        indicator_tool="get_stock_indicators",
        news_domains=(
            "reuters.com",
            "bloomberg.com",
            "cnbc.com",
            "marketwatch.com",
            "wsj.com",
            "finance.yahoo.com",
        ),
        technical_focus="trend, momentum, support/resistance, volume confirmation and volatility",
        research_focus="earnings, guidance, analyst actions, sector news and macro events",
        status_messages={
            **_WORKING,
            Participant.MARKET_RESEARCHER: "Researching news, earnings and market events...",
        },
    ),
    Market.FOREX: MarketProfile(
        market=Market.FOREX,
        asset_label="forex pair",
        example_symbols=("EUR/USD", "GBP/JPY", "USD/CAD", "AUD/USD"),
        quote_tool="get_forex_quote",
        quote_description="Gets a real-time forex pair quote including exchange rate, daily change and range.",
        indicator_tool="get_forex_indicators",
        news_domains=(
            "reuters.com",
            "bloomberg.com",
            "fxstreet.com",
            "forexlive.com",
            "dailyfx.com",
        ),
        technical_focus="exchange-rate trend, pip ranges, momentum and volatility",
        research_focus="central bank policy, economic releases, rate differentials and geopolitical events",
        status_messages={
            **_WORKING,
            Participant.TECHNICAL_ANALYST: "Analyzing exchange rates and technical indicators...",
            Participant.MARKET_RESEARCHER: "Researching central bank and economic news...",
        },
    ),
}


def get_market_profile(market: Market | str) -> MarketProfile:
    """Get the profile for a market.

    Raises:
        KeyError: If the market is unknown.
    """
    try:
        return MARKET_PROFILES[Market(market)]
    except ValueError as e:
        raise KeyError(f"Unknown market: {market}") from e


def list_markets() -> List[Dict[str, object]]:
    """List all markets with their specialists' tools."""
    return [
        {
            "market": profile.market.value,
            "asset_label": profile.asset_label,
            "example_symbols": list(profile.example_symbols),
            "workers": {participant.value: tools for participant, tools in profile.worker_tools.items()},
        }
        for profile in MARKET_PROFILES.values()
    ]
