"""In-process asyncio runner for queued web research runs.

Jobs wait in a FIFO queue and at most ``max_concurrency`` of them execute at
once. Each run is finalized exactly once through the run repository; if a
concurrent actor (a cancel, another worker) finalized it first the runner
logs and moves on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from stylenya.config import settings
from stylenya.core.exceptions import PipelineTimeoutError, RunCancelledError, RunnerClosedError
from stylenya.services.research.pipeline import ResearchInput

logger = logging.getLogger(__name__)

PipelineFn = Callable[[ResearchInput], Awaitable[Any]]
CancelState = Literal["QUEUED", "RUNNING", "UNKNOWN"]


class RunStore(Protocol):
    async def mark_running(self, run_id: str, timings_ms: Mapping[str, Any] | None = None) -> bool: ...

    async def finalize_success(
        self, run_id: str, *, timings_ms: Mapping[str, Any], result_json: Any
    ) -> bool: ...

    async def finalize_failed(
        self, run_id: str, *, timings_ms: Mapping[str, Any], error_json: Mapping[str, Any]
    ) -> bool: ...

    async def request_cancel(self, run_id: str) -> bool: ...


@dataclass(slots=True)
class QueuedJob:
    run_id: str
    research_input: ResearchInput
    enqueued_at: float = field(default_factory=time.monotonic)


@dataclass(slots=True)
class ActiveJob:
    run_id: str
    started_at: float
    cancel_requested: bool = False


@dataclass(frozen=True, slots=True)
class CancelResult:
    cancelled: bool
    state: CancelState


def build_error_payload(error: BaseException) -> dict[str, Any]:
    """Describe a pipeline failure as a JSON-safe dict for ``error_json``."""
    payload: dict[str, Any] = {
        "name": type(error).__name__,
        "message": str(error) or "Unexpected research pipeline error",
    }
    code = getattr(error, "code", None)
    if isinstance(code, str):
        payload["code"] = code
    status = getattr(error, "status", None)
    if isinstance(status, int) and not isinstance(status, bool):
        payload["status"] = status
    if getattr(error, "is_rate_limit", False) is True:
        payload["isRateLimit"] = True
    if getattr(error, "timeout", False) is True:
        payload["timeout"] = True
    stage = getattr(error, "stage", None)
    if isinstance(stage, str):
        payload["stage"] = stage
    if getattr(error, "cancelled", False) is True:
        payload["cancelled"] = True
    return payload


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)


def _result_payload(result: Any) -> Any:
    to_dict = getattr(result, "to_dict", None)
    return to_dict() if callable(to_dict) else result


class ResearchRunner:
    """Bounded-concurrency FIFO runner for research runs."""

    def __init__(
        self,
        *,
        repository: RunStore,
        pipeline: PipelineFn,
        max_concurrency: int | None = None,
        timeout_for_mode: Callable[[str], float] | None = None,
    ) -> None:
        self._repository = repository
        self._pipeline = pipeline
        self._max_concurrency = max(1, max_concurrency or settings.research_max_concurrency)
        self._timeout_for_mode = timeout_for_mode or settings.get_research_timeout
        self._queue: deque[QueuedJob] = deque()
        self._active: dict[str, ActiveJob] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    @property
    def is_closed(self) -> bool:
        return self._closed

    def enqueue(self, run_id: str, research_input: ResearchInput) -> bool:
        """Queue a run. Must be called from inside a running event loop.

        Returns False, queueing nothing, when the run is already queued or running.
        """
        if self._closed:
            raise RunnerClosedError()
        if run_id in self._active or any(job.run_id == run_id for job in self._queue):
            logger.warning("Research run already queued or running", extra={"run_id": run_id})
            return False
        self._queue.append(QueuedJob(run_id=run_id, research_input=research_input))
        logger.info(
            "Research run queued",
            extra={"run_id": run_id, "mode": research_input.mode, "queue_size": len(self._queue)},
        )
        self._drain()
        return True

    async def cancel(self, run_id: str) -> CancelResult:
        for job in self._queue:
            if job.run_id == run_id:
                self._queue.remove(job)
                await self._repository.finalize_failed(
                    run_id,
                    timings_ms={"total": 0},
                    error_json=build_error_payload(RunCancelledError("Run cancelled while queued")),
                )
                logger.info("Queued research run cancelled", extra={"run_id": run_id})
                return CancelResult(cancelled=True, state="QUEUED")

        active = self._active.get(run_id)
        if active is not None:
            active.cancel_requested = True
            await self._repository.request_cancel(run_id)
            logger.info("Running research run flagged for cancel", extra={"run_id": run_id})
            return CancelResult(cancelled=True, state="RUNNING")

        return CancelResult(cancelled=False, state="UNKNOWN")

    async def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting work. Queued jobs are not started; running jobs may finish."""
        self._closed = True
        logger.info(
            "Research runner shutting down",
            extra={"active": len(self._active), "queued": len(self._queue)},
        )
        if wait and self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def get_stats(self) -> dict[str, int]:
        return {
            "active": len(self._active),
            "queued": len(self._queue),
            "maxConcurrency": self._max_concurrency,
        }

    def _drain(self) -> None:
        if self._closed:
            return
        while len(self._active) < self._max_concurrency and self._queue:
            job = self._queue.popleft()
            self._active[job.run_id] = ActiveJob(run_id=job.run_id, started_at=time.monotonic())
            task = asyncio.get_running_loop().create_task(
                self._execute(job), name=f"research-run-{job.run_id}"
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _raise_if_cancelled(self, run_id: str) -> None:
        active = self._active.get(run_id)
        if active is not None and active.cancel_requested:
            raise RunCancelledError()

    async def _execute(self, job: QueuedJob) -> None:
        run_id = job.run_id
        started = self._active[run_id].started_at
        timings: dict[str, Any] = {}
        try:
            await self._repository.mark_running(run_id, {"startedAt": int(time.time() * 1000)})
            self._raise_if_cancelled(run_id)

            timeout = self._timeout_for_mode(job.research_input.mode)
            try:
                result = await asyncio.wait_for(self._pipeline(job.research_input), timeout=timeout)
            except asyncio.TimeoutError as e:
                raise PipelineTimeoutError("pipeline", timeout) from e

            result_json = _result_payload(result)
            pipeline_timings = result_json.get("timingsMs") if isinstance(result_json, dict) else None
            if isinstance(pipeline_timings, dict):
                timings.update(pipeline_timings)

            self._raise_if_cancelled(run_id)
            timings["total"] = _elapsed_ms(started)
            finalized = await self._repository.finalize_success(
                run_id, timings_ms=timings, result_json=result_json
            )
            if not finalized:
                logger.warning("Run already finalized before success", extra={"run_id": run_id})
        except Exception as e:
            timings["total"] = _elapsed_ms(started)
            error_json = build_error_payload(e)
            try:
                finalized = await self._repository.finalize_failed(
                    run_id, timings_ms=timings, error_json=error_json
                )
            except Exception:
                logger.exception("Could not record research run failure", extra={"run_id": run_id})
            else:
                if finalized:
                    logger.error(
                        "Web research pipeline failed",
                        extra={"run_id": run_id, "error": error_json},
                    )
        finally:
            self._active.pop(run_id, None)
            self._drain()
