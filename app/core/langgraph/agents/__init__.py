"""Specialist worker agents for the advisor workflow.

This package provides the technical, sentiment and research specialists
the Supervisor delegates to.
"""

from app.core.langgraph.agents.workers import (
    WORKER_CLASSES,
    BaseWorker,
    MarketResearcherWorker,
    SentimentAnalystWorker,
    TechnicalAnalystWorker,
    create_workers,
    list_workers,
)

__all__ = [
    "BaseWorker",
    "TechnicalAnalystWorker",
    "SentimentAnalystWorker",
    "MarketResearcherWorker",
    "WORKER_CLASSES",
    "create_workers",
    "list_workers",
]
