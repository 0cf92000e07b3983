"""This file contains the schemas for the application."""

from app.schemas.chat import (
    ChatRequest,
    MarketInfo,
    MarketListResponse,
    Message,
)

__all__ = [
    "ChatRequest",
    "MarketInfo",
    "MarketListResponse",
    "Message",
]
