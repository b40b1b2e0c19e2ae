"""Repository for deduplicated decision log entries."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stylenya.core.database import SessionFactory, get_session_context
from stylenya.models.decision_log import DecisionLogEntry
from stylenya.services.decisions.dedupe import build_dedupe_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DecisionLogCreate:
    action_type: str
    title: str
    target_type: str | None = None
    target_id: str | None = None
    rationale: str | None = None
    priority_score: float | None = None
    sources: Sequence[Any] = field(default_factory=tuple)
    as_of: datetime | date | None = None

    @property
    def dedupe_key(self) -> str:
        return build_dedupe_key(
            action_type=self.action_type,
            target_type=self.target_type,
            target_id=self.target_id,
            sources=self.sources,
            as_of=self.as_of,
        )


class DecisionLogRepository:
    """Insert-if-absent keyed on the decision dedupe key."""

    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory

    async def log_once(self, data: DecisionLogCreate) -> bool:
        """Return True when logged, False when the same decision exists this week."""
        dedupe_key = data.dedupe_key
        try:
            async with get_session_context(self._session_factory) as session:
                session.add(
                    DecisionLogEntry(
                        action_type=data.action_type,
                        target_type=data.target_type,
                        target_id=data.target_id,
                        title=data.title,
                        rationale=data.rationale,
                        priority_score=data.priority_score,
                        sources_json=list(data.sources),
                        dedupe_key=dedupe_key,
                    )
                )
        except IntegrityError:
            logger.info("Duplicate decision suppressed", extra={"dedupe_key": dedupe_key})
            return False
        return True

    async def list_recent(self, limit: int = 50) -> list[DecisionLogEntry]:
        async with get_session_context(self._session_factory, commit_on_exit=False) as session:
            stmt = (
                select(DecisionLogEntry)
                .order_by(DecisionLogEntry.created_at.desc())
                .limit(max(1, min(limit, 500)))
            )
            return list((await session.execute(stmt)).scalars().all())
