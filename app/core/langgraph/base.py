"""Shared base mixin for the advisor graph classes.

Provides common infrastructure methods:
- Message format conversion between the API schema and LangChain
- Run configuration (recursion limit, Langfuse tracing callbacks)
"""

from functools import lru_cache
from typing import (
    Any,
    Dict,
    List,
)

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
)
from langfuse import Langfuse
from langfuse.langchain import CallbackHandler

from app.core.config import settings
from app.core.logging import logger
from app.schemas import Message

_MESSAGE_TYPES = {
    "user": HumanMessage,
    "assistant": AIMessage,
    "system": SystemMessage,
}


@lru_cache(maxsize=1)
def get_langfuse_client() -> Langfuse:
    """Create the process-wide Langfuse client from settings on first use."""
    return Langfuse(
        public_key=settings.LANGFUSE_PUBLIC_KEY,
        secret_key=settings.LANGFUSE_SECRET_KEY,
        host=settings.LANGFUSE_HOST,
    )


class BaseAgentMixin:
    """Mixin providing shared infrastructure for advisor graph classes."""

    # ─── Message Processing ───────────────────────────────────────

    def _to_langchain_messages(self, messages: List[Message]) -> List[BaseMessage]:
        """Convert API messages to LangChain messages.

        Args:
            messages: Request messages.

        Returns:
            List of LangChain BaseMessage objects, in the same order.
        """
        return [_MESSAGE_TYPES[m.role](content=m.content) for m in messages]

    # ─── Run Configuration ────────────────────────────────────────

    def _build_run_config(self, session_id: str, **metadata: Any) -> Dict[str, Any]:
        """Build the LangGraph run config for one advisor run.

        Args:
            session_id: Identifier of this run, used for tracing.
            **metadata: Extra trace metadata.

        Returns:
            Dict[str, Any]: The run config.
        """
        callbacks = []
        if settings.LANGFUSE_TRACING_ENABLED:
            try:
                get_langfuse_client()
                callbacks.append(CallbackHandler(public_key=settings.LANGFUSE_PUBLIC_KEY))
            except Exception as e:
                logger.warning("langfuse_callback_unavailable", error=str(e))

        return {
            "recursion_limit": settings.ADVISOR_RECURSION_LIMIT,
            "callbacks": callbacks,
            "metadata": {
                "langfuse_session_id": session_id,
                "environment": settings.ENVIRONMENT.value,
                **metadata,
            },
        }
