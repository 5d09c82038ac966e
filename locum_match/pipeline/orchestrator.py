"""Orchestrator: drives match runs from trigger to outbox.

Short-term run (one urgent job):
  1. Load job, check short-term rules, build criteria
  2. Create run (PENDING) -> RUNNING
  3. Load physicians (+ reservations when conflict checks are on)
  4. Search, keep results >= short_term.notification_threshold
  5. Persist results, enqueue one SHORT_TERM_MATCH per physician
  6. COMPLETED

Weekly digest run (all active jobs):
  1. Create run (PENDING) -> RUNNING
  2. Load active jobs and physicians
  3. Search each job, keep results >= digest.notification_threshold
  4. Merge per physician: top digest.top_n jobs, one entry per job
  5. Persist merged rows, enqueue one WEEKLY_DIGEST per physician
  6. COMPLETED

Any exception after the run row exists moves the run to FAILED with the
message and is re-raised to the caller.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any, NamedTuple

from locum_match.core.config import DigestConfig, Settings
from locum_match.core.errors import JobNotFoundError, NotShortTermJobError
from locum_match.core.schemas import (
    LocumJob,
    MatchRun,
    MatchRunResult,
    OutboxItem,
    OutboxType,
    Reservation,
    RunStatus,
    RunType,
    SearchResult,
)
from locum_match.persistence.base import (
    MatchRunRepository,
    MatchRunResultRepository,
    NotificationOutboxRepository,
)
from locum_match.pipeline.eligibility import normalize
from locum_match.pipeline.search import build_criteria, search_physicians
from locum_match.pipeline.short_term import is_short_term_job
from locum_match.sources.base import MatchingDataSource

logger = logging.getLogger(__name__)


class JobMatch(NamedTuple):
    """A search result together with the job it was computed for."""

    job: LocumJob
    result: SearchResult


def is_active_job(job: LocumJob, config: DigestConfig) -> bool:
    """A job is active when it has no reservation or one in a configured open status."""
    if job.reservation_status is None:
        return True
    active = {normalize(s) for s in config.active_reservation_statuses}
    return normalize(job.reservation_status) in active


def select_top_matches(matches: Iterable[JobMatch], top_n: int) -> list[JobMatch]:
    """Best ``top_n`` matches for one physician, at most one per job id."""
    best: dict[str, JobMatch] = {}
    for m in matches:
        current = best.get(m.job.id)
        if current is None or m.result.score > current.result.score:
            best[m.job.id] = m
    ranked = sorted(best.values(), key=lambda m: (-m.result.score, m.job.id))
    return ranked[:top_n]


def _match_payload(job: LocumJob, result: SearchResult) -> dict[str, Any]:
    return {
        "job_id": job.id,
        "job_reference": job.reference,
        "job_title": job.post_title,
        "score": result.score,
        "breakdown": dict(result.breakdown),
    }


class MatchOrchestrator:
    """Runs short-term and weekly-digest matching against the given repositories.

    Usage::

        orchestrator = MatchOrchestrator(settings, source, runs, results, outbox)
        run_id = await orchestrator.run_for_job("job-123")
        run_id = await orchestrator.run_weekly()
    """

    def __init__(
        self,
        settings: Settings,
        source: MatchingDataSource,
        runs: MatchRunRepository,
        results: MatchRunResultRepository,
        outbox: NotificationOutboxRepository,
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._settings = settings
        self._source = source
        self._runs = runs
        self._results = results
        self._outbox = outbox
        self._clock = clock or datetime.now
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_for_job(self, job_id: str, run_id: str | None = None) -> str:
        """Run short-term matching for one job. Returns the run id."""
        job = await self._source.get_job(job_id)
        if job is None:
            msg = f"Job {job_id} not found"
            raise JobNotFoundError(msg)
        if not is_short_term_job(job, self._settings.short_term, now=self._clock()):
            msg = f"Job {job_id} does not meet the short-term rules"
            raise NotShortTermJobError(msg)

        criteria = build_criteria(job, self._settings, is_short_term=True)
        run = MatchRun(
            id=run_id or self._new_id(),
            type=RunType.SHORT_TERM,
            job_id=job.id,
            created_at=self._clock(),
        )
        await self._runs.create_run(run)
        logger.info("Short-term run %s created for job %s", run.id, job.id)

        async def body() -> int:
            physicians = await self._source.list_physicians()
            reservations = await self._load_reservations()
            ranked = search_physicians(criteria, physicians, self._settings, reservations)

            threshold = self._settings.short_term.notification_threshold
            matches = [r for r in ranked if r.score >= threshold]
            logger.info(
                "Run %s: %d ranked, %d at or above notification threshold %.2f",
                run.id, len(ranked), len(matches), threshold,
            )

            now = self._clock()
            await self._results.save_results(
                run.id, [self._result_row(run.id, job, r, now) for r in matches],
            )
            items = [
                OutboxItem(
                    id=self._new_id(),
                    type=OutboxType.SHORT_TERM_MATCH,
                    recipient_id=r.physician_id,
                    payload={"run_id": run.id, **_match_payload(job, r)},
                    created_at=now,
                )
                for r in matches
            ]
            if items:
                await self._outbox.enqueue(items)
            return len(items)

        await self._execute(run.id, body)
        return run.id

    async def run_weekly(self, run_id: str | None = None) -> str:
        """Run the weekly digest across all active jobs. Returns the run id."""
        run = MatchRun(
            id=run_id or self._new_id(),
            type=RunType.WEEKLY_DIGEST,
            created_at=self._clock(),
        )
        await self._runs.create_run(run)
        logger.info("Weekly digest run %s created", run.id)

        async def body() -> int:
            digest = self._settings.digest
            jobs = [j for j in await self._source.list_jobs() if is_active_job(j, digest)]
            physicians = await self._source.list_physicians()
            reservations = await self._load_reservations()
            logger.info("Run %s: %d active jobs, %d physicians", run.id, len(jobs), len(physicians))

            per_physician: dict[str, list[JobMatch]] = defaultdict(list)
            for job in jobs:
                criteria = build_criteria(job, self._settings)
                for r in search_physicians(criteria, physicians, self._settings, reservations):
                    if r.score >= digest.notification_threshold:
                        per_physician[r.physician_id].append(JobMatch(job, r))

            now = self._clock()
            rows: list[MatchRunResult] = []
            items: list[OutboxItem] = []
            for physician_id in sorted(per_physician):
                top = select_top_matches(per_physician[physician_id], digest.top_n)
                if not top:
                    continue
                rows.extend(self._result_row(run.id, m.job, m.result, now) for m in top)
                items.append(
                    OutboxItem(
                        id=self._new_id(),
                        type=OutboxType.WEEKLY_DIGEST,
                        recipient_id=physician_id,
                        payload={
                            "run_id": run.id,
                            "matches": [_match_payload(m.job, m.result) for m in top],
                        },
                        created_at=now,
                    ),
                )

            await self._results.save_results(run.id, rows)
            if items:
                await self._outbox.enqueue(items)
            logger.info("Run %s: %d result rows, %d digests queued", run.id, len(rows), len(items))
            return len(items)

        await self._execute(run.id, body)
        return run.id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _execute(self, run_id: str, body: Callable[[], Awaitable[int]]) -> None:
        """Move the run through RUNNING to a terminal state around ``body``."""
        try:
            await self._transition(run_id, RunStatus.RUNNING)
            queued = await body()
            await self._transition(run_id, RunStatus.COMPLETED)
        except (Exception, asyncio.CancelledError) as e:
            message = str(e) or type(e).__name__
            logger.error("Run %s failed: %s", run_id, message, exc_info=True)
            await self._mark_failed(run_id, message)
            raise
        finally:
            self._locks.pop(run_id, None)
        logger.info("Run %s completed: %d notifications queued", run_id, queued)

    async def _transition(
        self,
        run_id: str,
        status: RunStatus,
        error: str | None = None,
    ) -> None:
        async with self._locks[run_id]:
            await self._runs.update_run_status(run_id, status, error)
        logger.debug("Run %s -> %s", run_id, status.value)

    async def _mark_failed(self, run_id: str, message: str) -> None:
        # The run's own error is re-raised by _execute regardless.
        try:
            await self._transition(run_id, RunStatus.FAILED, message)
        except Exception:
            logger.exception("Could not mark run %s as FAILED", run_id)

    async def _load_reservations(self) -> list[Reservation]:
        if not self._settings.eligibility.check_conflicts:
            return []
        return await self._source.list_reservations()

    @staticmethod
    def _result_row(
        run_id: str,
        job: LocumJob,
        result: SearchResult,
        computed_at: datetime,
    ) -> MatchRunResult:
        return MatchRunResult(
            run_id=run_id,
            physician_id=result.physician_id,
            job_id=job.id,
            score=result.score,
            breakdown=dict(result.breakdown),
            computed_at=computed_at,
        )
