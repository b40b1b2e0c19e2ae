"""Logged decisions, unique per dedupe key."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stylenya.models.base import Base, IdMixin, JSONType


class DecisionLogEntry(Base, IdMixin):
    """One logged action; the unique dedupe key suppresses same-week repeats."""

    __tablename__ = "decision_log_entries"

    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    rationale: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    sources_json: Mapped[list[Any] | None] = mapped_column(JSONType, nullable=True)
    dedupe_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DecisionLogEntry {self.action_type} {self.target_type}:{self.target_id}>"
