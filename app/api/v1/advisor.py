"""Advisor API endpoints.

Each market (crypto, stock, forex) has its own advisor; all of them share
one tool cache and one upstream HTTP client for the life of the process.

API prefix: /advisor
"""

import uuid

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Request,
)
from fastapi.responses import StreamingResponse

from app.api.v1.sse import (
    SSE_HEADERS,
    sse_event_generator,
)
from app.core.config import settings
from app.core.langgraph.workflow import list_markets
from app.core.langgraph.workflow.graph import (
    AdvisorGraph,
    AdvisorRegistry,
)
from app.core.limiter import limiter
from app.core.logging import (
    bind_request_context,
    logger,
)
from app.schemas import (
    ChatRequest,
    MarketListResponse,
)

router = APIRouter()
advisor_registry = AdvisorRegistry()


def get_advisor_graph(market: str) -> AdvisorGraph:
    """Resolve the advisor for the ``market`` path parameter.

    Raises:
        HTTPException: 404 if the market is unknown.
    """
    try:
        return advisor_registry.get(market)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown market: {market}")


@router.post("/{market}/chat")
@limiter.limit(settings.RATE_LIMIT_ENDPOINTS["advisor_chat"][0])
async def advisor_chat(
    request: Request,
    market: str,
    chat_request: ChatRequest,
    advisor: AdvisorGraph = Depends(get_advisor_graph),
):
    """Run the advisor and stream its progress as Server-Sent Events.

    Args:
        request: The FastAPI request object for rate limiting.
        market: Market whose advisor should answer.
        chat_request: The chat request containing the conversation history.
        advisor: The market's advisor graph.

    Returns:
        StreamingResponse: SSE stream of ``agent`` frames ending in one ``final`` or ``error`` frame.
    """
    session_id = uuid.uuid4().hex
    messages = chat_request.messages[-settings.ADVISOR_MAX_HISTORY_MESSAGES :]
    bind_request_context(session_id=session_id, market=market)

    logger.info(
        "advisor_request_received",
        session_id=session_id,
        market=market,
        message_count=len(chat_request.messages),
        truncated_count=len(messages),
    )

    events = advisor.stream_events(messages, session_id)
    return StreamingResponse(
        sse_event_generator(events, session_id, log_event_name="advisor_stream_failed"),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/markets", response_model=MarketListResponse)
@limiter.limit(settings.RATE_LIMIT_ENDPOINTS["markets"][0])
async def get_markets(request: Request):
    """List all markets with an advisor.

    Returns:
        MarketListResponse: Markets with their specialists' tools.
    """
    return MarketListResponse(markets=list_markets())
