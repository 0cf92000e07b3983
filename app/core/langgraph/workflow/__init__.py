"""Advisor workflow: state, market profiles and the supervisor-routed graph.

Key components:
- AdvisorState: shared state threaded through one run
- MarketProfile: what differs between the crypto, stock and forex advisors
- Supervisor / FinalSynthesizer: routing and answer nodes (``supervisor``, ``synthesizer``)
- AdvisorGraph: the compiled graph and its event stream (``graph``)

Only the leaf modules are re-exported here; import the graph, supervisor and
emitter from their own modules since they depend on the specialist agents.
"""

from app.core.langgraph.workflow.profiles import (
    MARKET_PROFILES,
    Market,
    MarketProfile,
    get_market_profile,
    list_markets,
)
from app.core.langgraph.workflow.schema import (
    WORKER_PARTICIPANTS,
    AdvisorState,
    Participant,
    RouteDecision,
    RouteTarget,
    merge_findings,
)

__all__ = [
    "MARKET_PROFILES",
    "Market",
    "MarketProfile",
    "get_market_profile",
    "list_markets",
    "WORKER_PARTICIPANTS",
    "AdvisorState",
    "Participant",
    "RouteDecision",
    "RouteTarget",
    "merge_findings",
]
