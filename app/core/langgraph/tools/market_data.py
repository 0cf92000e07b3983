"""Twelve Data tools: quotes, technical indicators and symbol search.

The same three tool classes serve every market; each market profile binds
instances with market-specific names and wording (``get_crypto_price``,
``get_stock_quote``, ``get_forex_quote``, ...).
"""

from datetime import (
    datetime,
    timezone,
)
from enum import Enum
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
    normalize_query,
    normalize_symbol,
)
from app.core.langgraph.tools.http import (
    UpstreamClient,
    UpstreamError,
)


class Indicator(str, Enum):
    """Technical indicators available from Twelve Data."""

    RSI = "rsi"
    MACD = "macd"
    EMA = "ema"
    BBANDS = "bbands"
    ATR = "atr"
    OBV = "obv"
    SUPERTREND = "supertrend"
    STOCH = "stoch"
    ADX = "adx"


INDICATOR_PARAMS: Dict[Indicator, Dict[str, str]] = {
    Indicator.RSI: {"time_period": "14"},
    Indicator.EMA: {"time_period": "20"},
    Indicator.MACD: {"fast_period": "12", "slow_period": "26", "signal_period": "9"},
    Indicator.BBANDS: {"time_period": "20", "sd": "2"},
    Indicator.ATR: {"time_period": "14"},
    Indicator.ADX: {"time_period": "14"},
    Indicator.SUPERTREND: {"multiplier": "3", "period": "10"},
    Indicator.OBV: {},
    Indicator.STOCH: {},
}


class SymbolArgs(BaseModel):
    """Arguments for quote tools."""

    symbol: str = Field(..., min_length=1, description="Ticker or pair symbol, e.g. 'BTC/USD', 'AAPL', 'EUR/USD'")


class IndicatorArgs(BaseModel):
    """Arguments for indicator tools."""

    symbol: str = Field(..., min_length=1, description="Ticker or pair symbol, e.g. 'BTC/USD', 'AAPL', 'EUR/USD'")
    indicator: Indicator = Field(default=Indicator.RSI, description="Technical indicator to fetch")


class SymbolSearchArgs(BaseModel):
    """Arguments for the symbol search tool."""

    query: str = Field(..., min_length=1, description="Company, coin or currency name or partial ticker")


def twelvedata_status(payload: Any) -> Optional[int]:
    """Extract the in-body status code Twelve Data uses for errors (HTTP is still 200)."""
    if isinstance(payload, dict) and payload.get("status") == "error":
        code = payload.get("code")
        return int(code) if isinstance(code, (int, str)) and str(code).isdigit() else 400
    return None


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class TwelveDataTool(MarketTool):
    """Shared request plumbing for Twelve Data endpoints."""

    def __init__(self, name: str, description: str, base_url: Optional[str] = None, api_key: Optional[str] = None):
        """Initialize the tool.

        Args:
            name: Tool name exposed to the model.
            description: Tool description exposed to the model.
            base_url: Twelve Data base URL; defaults to settings.
            api_key: Twelve Data API key; defaults to settings.
        """
        self.name = name
        self.description = description
        self.base_url = (base_url or settings.TWELVEDATA_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.TWELVEDATA_API_KEY

    async def _fetch(self, client: UpstreamClient, endpoint: str, params: Dict[str, str]) -> Dict[str, Any]:
        if not self.api_key:
            raise UpstreamError("TWELVEDATA_API_KEY not configured")
        data = await client.get_json(
            f"{self.base_url}/{endpoint}",
            params={**params, "apikey": self.api_key},
            payload_status=twelvedata_status,
        )
        if not isinstance(data, dict):
            raise UpstreamError("Malformed payload: expected a JSON object")
        if data.get("status") == "error":
            raise UpstreamError(f"API error: {data.get('message', 'Unknown error')}", twelvedata_status(data))
        return data


class QuoteTool(TwelveDataTool):
    """Real-time quote: price, change, volume and daily range."""

    args_schema = SymbolArgs

    async def run(self, client: UpstreamClient, args: SymbolArgs) -> Dict[str, Any]:
        """Fetch the latest quote for ``args.symbol``."""
        symbol = normalize_symbol(args.symbol)
        data = await self._fetch(client, "quote", {"symbol": symbol})
        return {
            "symbol": data.get("symbol", symbol),
            "name": data.get("name"),
            "exchange": data.get("exchange"),
            "price": _to_float(data.get("close") or data.get("price")),
            "open": _to_float(data.get("open")),
            "high": _to_float(data.get("high")),
            "low": _to_float(data.get("low")),
            "previous_close": _to_float(data.get("previous_close")),
            "change": _to_float(data.get("change")),
            "change_percent": _to_float(data.get("percent_change")),
            "volume": _to_float(data.get("volume")),
            "timestamp": data.get("datetime"),
        }


class IndicatorTool(TwelveDataTool):
    """One technical indicator series (latest three daily values)."""

    args_schema = IndicatorArgs

    def cache_key(self, args: IndicatorArgs) -> Tuple[Hashable, ...]:
        """Key on symbol and indicator."""
        return (self.name, normalize_symbol(args.symbol), args.indicator.value)

    async def run(self, client: UpstreamClient, args: IndicatorArgs) -> Dict[str, Any]:
        """Fetch ``args.indicator`` for ``args.symbol``."""
        symbol = normalize_symbol(args.symbol)
        params = {"symbol": symbol, "interval": "1day", "outputsize": "10", **INDICATOR_PARAMS[args.indicator]}
        data = await self._fetch(client, args.indicator.value, params)
        values = data.get("values") or []
        return {
            "symbol": (data.get("meta") or {}).get("symbol", symbol),
            "indicator": args.indicator.value,
            "values": values[:3],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class SymbolSearchTool(TwelveDataTool):
    """Resolve names to tickers. Listings rarely change, so results live a day."""

    args_schema = SymbolSearchArgs
    ttl_seconds = settings.TOOL_STATIC_CACHE_TTL_SECONDS

    def cache_key(self, args: SymbolSearchArgs) -> Tuple[Hashable, ...]:
        """Key on the normalized query."""
        return (self.name, normalize_query(args.query))

    async def run(self, client: UpstreamClient, args: SymbolSearchArgs) -> Dict[str, Any]:
        """Search listings matching ``args.query``."""
        data = await self._fetch(client, "symbol_search", {"symbol": args.query.strip(), "outputsize": "10"})
        matches = [
            {
                "symbol": item.get("symbol"),
                "name": item.get("instrument_name"),
                "exchange": item.get("exchange"),
                "type": item.get("instrument_type"),
                "currency": item.get("currency"),
            }
            for item in (data.get("data") or [])
            if isinstance(item, dict)
        ]
        return {"query": args.query, "matches": matches}
