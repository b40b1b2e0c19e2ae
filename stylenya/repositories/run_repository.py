"""Repository for ResearchRun lifecycle transitions.

Every status change is a single conditional UPDATE whose WHERE clause names
the statuses the transition may start from. The affected row count tells the
caller whether its transition applied; ``False`` means another actor moved the
run first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import null, select, update

from stylenya.core.database import SessionFactory, get_session_context
from stylenya.core.db_retry import RetryPolicy, retry_run_write
from stylenya.core.exceptions import RunNotFoundError
from stylenya.models.research_run import ACTIVE_RUN_STATUSES, ResearchRun, RunStatus

logger = logging.getLogger(__name__)

RunTimings = Mapping[str, float | int | bool]


@dataclass(frozen=True, slots=True)
class RunCreate:
    query: str
    mode: str = "quick"
    locale: str | None = None
    geo: str | None = None
    language: str | None = None


class RunRepository:
    """Creates runs and applies guarded status transitions."""

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._retry_policy = retry_policy or RetryPolicy.from_settings()

    async def create_queued(self, data: RunCreate) -> str:
        return await self._create(data, RunStatus.QUEUED)

    async def create_running(self, data: RunCreate) -> str:
        return await self._create(data, RunStatus.RUNNING)

    async def _create(self, data: RunCreate, status: RunStatus) -> str:
        async with get_session_context(self._session_factory) as session:
            run = ResearchRun(
                query=data.query,
                mode=data.mode or "quick",
                locale=data.locale,
                geo=data.geo,
                language=data.language,
                status=status.value,
            )
            session.add(run)
            await session.flush()
            run_id = run.id
        logger.info("Research run created", extra={"run_id": run_id, "status": status.value})
        return run_id

    async def get(self, run_id: str) -> ResearchRun | None:
        async with get_session_context(self._session_factory, commit_on_exit=False) as session:
            return await session.get(ResearchRun, run_id)

    async def get_required(self, run_id: str) -> ResearchRun:
        run = await self.get(run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        return run

    async def mark_running(self, run_id: str, timings_ms: RunTimings | None = None) -> bool:
        """QUEUED -> RUNNING."""
        values: dict[str, Any] = {"status": RunStatus.RUNNING.value}
        if timings_ms is not None:
            values["timings_ms"] = dict(timings_ms)
        return await self._transition(
            run_id,
            from_statuses=(RunStatus.QUEUED.value,),
            values=values,
            operation_name="run_mark_running",
        )

    async def finalize_success(
        self,
        run_id: str,
        *,
        timings_ms: RunTimings,
        result_json: Any,
    ) -> bool:
        """QUEUED/RUNNING -> SUCCESS. At most one finalize call ever applies."""
        return await self._transition(
            run_id,
            from_statuses=ACTIVE_RUN_STATUSES,
            values={
                "status": RunStatus.SUCCESS.value,
                "timings_ms": dict(timings_ms),
                "result_json": result_json,
                "error_json": null(),
            },
            operation_name="run_finalize_success",
        )

    async def finalize_failed(
        self,
        run_id: str,
        *,
        timings_ms: RunTimings,
        error_json: Mapping[str, Any],
    ) -> bool:
        """QUEUED/RUNNING -> FAILED. At most one finalize call ever applies."""
        return await self._transition(
            run_id,
            from_statuses=ACTIVE_RUN_STATUSES,
            values={
                "status": RunStatus.FAILED.value,
                "timings_ms": dict(timings_ms),
                "error_json": dict(error_json),
            },
            operation_name="run_finalize_failed",
        )

    async def request_cancel(self, run_id: str) -> bool:
        """Merge ``cancelRequested`` into error_json without touching status."""

        async def _merge_once() -> bool:
            async with get_session_context(self._session_factory) as session:
                stmt = select(ResearchRun).where(ResearchRun.id == run_id).with_for_update()
                run = (await session.execute(stmt)).scalar_one_or_none()
                if run is None:
                    return False
                base = dict(run.error_json) if isinstance(run.error_json, dict) else {}
                base["cancelRequested"] = True
                run.error_json = base
                return True

        applied = await retry_run_write(
            _merge_once,
            operation_name="run_request_cancel",
            run_id=run_id,
            policy=self._retry_policy,
        )
        if applied:
            logger.info("Research run cancel requested", extra={"run_id": run_id})
        return applied

    async def _transition(
        self,
        run_id: str,
        *,
        from_statuses: Iterable[str],
        values: Mapping[str, Any],
        operation_name: str,
    ) -> bool:
        stmt = (
            update(ResearchRun)
            .where(ResearchRun.id == run_id, ResearchRun.status.in_(tuple(from_statuses)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async def _update_once() -> bool:
            async with get_session_context(self._session_factory) as session:
                result = await session.execute(stmt)
                return result.rowcount == 1

        applied = await retry_run_write(
            _update_once,
            operation_name=operation_name,
            run_id=run_id,
            policy=self._retry_policy,
        )
        if not applied:
            logger.warning(
                "Run transition not applied; run already moved on",
                extra={"run_id": run_id, "operation": operation_name},
            )
        return applied
