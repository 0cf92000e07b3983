"""Schemas for the advisor chat endpoints."""

from typing import (
    Dict,
    List,
    Literal,
)

from pydantic import (
    BaseModel,
    Field,
)


class Message(BaseModel):
    """One message of the conversation history."""

    role: Literal["user", "assistant", "system"] = Field(..., description="Who wrote the message")
    content: str = Field(..., min_length=1, max_length=10000, description="Message text")


class ChatRequest(BaseModel):
    """Request body for an advisor chat run."""

    messages: List[Message] = Field(..., min_length=1, description="Conversation history, oldest first")


class MarketInfo(BaseModel):
    """A market the advisor serves and the tools its specialists use."""

    market: str
    asset_label: str
    example_symbols: List[str]
    workers: Dict[str, List[str]]


class MarketListResponse(BaseModel):
    """Response model for listing markets."""

    markets: List[MarketInfo]
