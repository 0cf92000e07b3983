"""State and routing schemas for the advisor workflow.

``AdvisorState`` is the single record threaded through every node of one
run. Its reducers encode the accumulation rules:

- ``messages``: concatenated, never reordered or removed;
- ``next``: overwritten on every assignment;
- ``data``: agent-owned namespaces, merged without dropping earlier keys;
- ``agent_calls``: summed, so it can only grow.
"""

import operator
from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
)

from langchain_core.messages import AnyMessage
from pydantic import (
    BaseModel,
    Field,
)


class Participant(str, Enum):
    """Every node a run can hand control to."""

    SUPERVISOR = "Supervisor"
    TECHNICAL_ANALYST = "TechnicalAnalyst"
    SENTIMENT_ANALYST = "SentimentAnalyst"
    MARKET_RESEARCHER = "MarketResearcher"
    FINAL_RESPONSE = "FinalResponse"
    END = "End"


WORKER_PARTICIPANTS = (
    Participant.TECHNICAL_ANALYST,
    Participant.SENTIMENT_ANALYST,
    Participant.MARKET_RESEARCHER,
)


class RouteTarget(str, Enum):
    """Values the supervisor model may choose from."""

    TECHNICAL_ANALYST = "TechnicalAnalyst"
    SENTIMENT_ANALYST = "SentimentAnalyst"
    MARKET_RESEARCHER = "MarketResearcher"
    FINISH = "FINISH"

    def to_participant(self) -> Participant:
        """Map the routing choice onto the node that runs next."""
        if self is RouteTarget.FINISH:
            return Participant.FINAL_RESPONSE
        return Participant(self.value)


class RouteDecision(BaseModel):
    """Structured routing output of the supervisor."""

    next: RouteTarget = Field(
        ...,
        description=(
            "The next agent to route to:\n"
            "- TechnicalAnalyst: price, charts, indicators (RSI, MACD, EMA, ...)\n"
            "- SentimentAnalyst: social sentiment, community mood, Reddit analysis\n"
            "- MarketResearcher: news, regulation, market events, macro factors\n"
            "- FINISH: the collected data is sufficient to answer the user's query"
        ),
    )
    reasoning: str = Field(..., description="Brief explanation of why this agent was chosen")


def merge_findings(left: Optional[Dict[str, Any]], right: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge a node's findings into the accumulated ``data`` mapping.

    Top-level keys are agent namespaces. A namespace seen for the first time
    is added as-is; a namespace written again (the same agent visited twice)
    is merged key by key so earlier tool results survive. Other namespaces
    are never touched.
    """
    merged = dict(left or {})
    for namespace, findings in (right or {}).items():
        previous = merged.get(namespace)
        if isinstance(previous, dict) and isinstance(findings, Mapping):
            merged[namespace] = {**previous, **findings}
        else:
            merged[namespace] = findings
    return merged


class AdvisorState(BaseModel):
    """State of one advisor run.

    Attributes:
        messages: Conversation plus routing announcements and worker notes.
        next: Participant that runs next.
        data: Findings per agent namespace (``technical``, ``sentiment``, ``market``).
        agent_calls: Number of worker visits so far.
    """

    messages: Annotated[List[AnyMessage], operator.add] = Field(default_factory=list)
    next: Participant = Participant.SUPERVISOR
    data: Annotated[Dict[str, Any], merge_findings] = Field(default_factory=dict)
    agent_calls: Annotated[int, operator.add] = 0
