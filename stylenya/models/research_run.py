"""Web research run tracking model."""

from __future__ import annotations

from enum import Enum
from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stylenya.models.base import Base, IdMixin, JSONType, TimestampMixin


class RunStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


ACTIVE_RUN_STATUSES = (RunStatus.QUEUED.value, RunStatus.RUNNING.value)
TERMINAL_RUN_STATUSES = (RunStatus.SUCCESS.value, RunStatus.FAILED.value)


class ResearchRun(Base, IdMixin, TimestampMixin):
    """A long-lived research job with a guarded status lifecycle."""

    __tablename__ = "web_research_runs"

    query: Mapped[str] = mapped_column(Text, nullable=False)
    mode: Mapped[str] = mapped_column(String(10), default="quick", nullable=False)
    locale: Mapped[str | None] = mapped_column(String(20), nullable=True)
    geo: Mapped[str | None] = mapped_column(String(20), nullable=True)
    language: Mapped[str | None] = mapped_column(String(20), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=RunStatus.QUEUED.value,
        nullable=False,
        index=True,
    )

    timings_ms: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    result_json: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    error_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    @property
    def cancel_requested(self) -> bool:
        return isinstance(self.error_json, dict) and self.error_json.get("cancelRequested") is True

    def __repr__(self) -> str:
        return f"<ResearchRun {self.id} ({self.status})>"
