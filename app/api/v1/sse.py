"""Shared SSE (Server-Sent Events) helper for streaming endpoints.

Converts the advisor's progress event sequence into SSE frames and
guarantees the stream ends with exactly one terminal frame.
"""

from typing import AsyncIterator

from app.core.langgraph.workflow.events import (
    ErrorEvent,
    ProgressEvent,
)
from app.core.logging import logger

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

TERMINAL_EVENT_TYPES = frozenset({"final", "error"})


async def sse_event_generator(
    events: AsyncIterator[ProgressEvent],
    session_id: str,
    log_event_name: str = "stream_failed",
) -> AsyncIterator[str]:
    r"""Convert an async progress event stream into SSE frames.

    Yields ``data: {json}\n\n`` lines suitable for ``StreamingResponse``.
    Nothing is sent after the first ``final`` or ``error`` event; if the
    events end without one, an ``error`` frame is added.

    Args:
        events: Async iterator of progress events.
        session_id: Session ID for error logging.
        log_event_name: Event name used in structured log on failure.

    Yields:
        SSE-formatted strings, one per event.
    """
    try:
        async for event in events:
            yield event.to_sse()
            if event.type in TERMINAL_EVENT_TYPES:
                return
    except Exception as e:
        logger.exception(log_event_name, session_id=session_id, error=str(e))
        yield ErrorEvent(error=str(e) or type(e).__name__).to_sse()
        return
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()

    logger.error(log_event_name, session_id=session_id, error="stream ended without a terminal event")
    yield ErrorEvent(error="The advisor run ended without a final response").to_sse()
