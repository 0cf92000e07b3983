"""Tool Invocation Layer.

``ToolInvoker`` executes named tool calls requested by a worker's model:
it validates arguments, serves fresh payloads from the shared ``ToolCache``,
runs the tool through the shared ``UpstreamClient`` otherwise, and converts
every ordinary upstream failure into an ``{"error": ...}`` payload. Nothing
raised by a backend escapes ``invoke``.
"""

import asyncio
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
)

from langchain_core.tools import StructuredTool
from pydantic import ValidationError

from app.core.langgraph.tools.base import MarketTool
from app.core.langgraph.tools.cache import ToolCache
from app.core.langgraph.tools.http import (
    RateLimitExceededError,
    UpstreamClient,
    UpstreamError,
)
from app.core.logging import logger


class ToolInvoker:
    """Executes tool calls with caching and failure absorption.

    Attributes:
        cache: Process-wide payload cache.
        client: Process-wide upstream client (owns the retry policy).
    """

    def __init__(self, tools: Iterable[MarketTool], cache: ToolCache, client: UpstreamClient):
        """Initialize the invoker.

        Args:
            tools: Every tool that may be called.
            cache: Shared TTL cache service.
            client: Shared upstream HTTP client.
        """
        self._tools: Dict[str, MarketTool] = {}
        for market_tool in tools:
            if market_tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {market_tool.name}")
            self._tools[market_tool.name] = market_tool
        self.cache = cache
        self.client = client

    @property
    def tool_names(self) -> List[str]:
        """Names of all registered tools."""
        return list(self._tools.keys())

    def get_tool(self, name: str) -> Optional[MarketTool]:
        """Get a registered tool by name."""
        return self._tools.get(name)

    async def invoke(self, name: str, args: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Execute one tool call.

        Args:
            name: Tool name as requested by the model.
            args: Raw arguments as requested by the model.

        Returns:
            Dict[str, Any]: The tool payload, or an ``{"error": ...}`` payload.
        """
        market_tool = self._tools.get(name)
        if market_tool is None:
            logger.warning("tool_not_found", tool_name=name, available=self.tool_names)
            return {"error": f"Unknown tool: {name}"}

        try:
            parsed = market_tool.args_schema.model_validate(dict(args or {}))
        except ValidationError as e:
            logger.warning("tool_arguments_invalid", tool_name=name, error=str(e))
            return {"error": f"Invalid arguments for {name}: {e.errors(include_url=False)}"}

        key = market_tool.cache_key(parsed)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("tool_cache_hit", tool_name=name, cache_key=list(key))
            return cached

        try:
            payload = await market_tool.run(self.client, parsed)
        except RateLimitExceededError as e:
            logger.warning("tool_rate_limited", tool_name=name, error=str(e))
            return {"error": str(e), **market_tool.error_context(parsed)}
        except UpstreamError as e:
            logger.warning("tool_upstream_failed", tool_name=name, status_code=e.status_code, error=str(e))
            return {"error": str(e), **market_tool.error_context(parsed)}
        except Exception as e:
            logger.exception("tool_execution_failed", tool_name=name, error=str(e))
            return {"error": f"{name} failed: {e}", **market_tool.error_context(parsed)}

        self.cache.set(key, payload, market_tool.ttl_seconds)
        logger.info("tool_executed", tool_name=name, cache_key=list(key))
        return payload

    async def invoke_all(self, tool_calls: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """Execute a batch of tool calls concurrently and merge the results.

        Results are keyed by tool name in request order, independent of which
        call finishes first. A tool requested more than once in the batch maps
        to the list of its payloads, in request order.

        Args:
            tool_calls: LangChain-style tool calls (``{"name", "args", "id"}``).

        Returns:
            Dict[str, Any]: Tool name to payload (or list of payloads).
        """
        payloads = await asyncio.gather(*(self.invoke(call["name"], call.get("args")) for call in tool_calls))

        counts: Dict[str, int] = {}
        for call in tool_calls:
            counts[call["name"]] = counts.get(call["name"], 0) + 1

        results: Dict[str, Any] = {}
        for call, payload in zip(tool_calls, payloads):
            name = call["name"]
            if counts[name] > 1:
                results.setdefault(name, []).append(payload)
            else:
                results[name] = payload
        return results

    def as_langchain_tools(self, names: Optional[Iterable[str]] = None) -> List[StructuredTool]:
        """Expose tools to a chat model for ``bind_tools``.

        Each structured tool delegates to ``invoke`` so it is also runnable
        on its own.

        Args:
            names: Subset of tool names; all tools when omitted.

        Returns:
            List[StructuredTool]: LangChain tools in the requested order.
        """
        selected = list(names) if names is not None else self.tool_names
        langchain_tools = []
        for name in selected:
            market_tool = self._tools.get(name)
            if market_tool is None:
                raise KeyError(f"Unknown tool: {name}")

            async def _run(_name: str = name, **kwargs: Any) -> Dict[str, Any]:
                return await self.invoke(_name, kwargs)

            langchain_tools.append(
                StructuredTool.from_function(
                    coroutine=_run,
                    name=market_tool.name,
                    description=market_tool.description,
                    args_schema=market_tool.args_schema,
                )
            )
        return langchain_tools
