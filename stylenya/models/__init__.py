"""SQLAlchemy database models."""

from stylenya.models.base import Base
from stylenya.models.decision_log import DecisionLogEntry
from stylenya.models.research_run import ResearchRun, RunStatus

__all__ = [
    "Base",
    "DecisionLogEntry",
    "ResearchRun",
    "RunStatus",
]
