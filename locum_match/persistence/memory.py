"""In-memory repositories for tests and for embedding the engine without a database."""

import logging
from collections import Counter
from datetime import datetime

from locum_match.core.errors import DuplicateRecordError, RecordNotFoundError
from locum_match.core.schemas import (
    MatchRun,
    MatchRunResult,
    OutboxItem,
    OutboxType,
    RunStatus,
    RunType,
)
from locum_match.persistence.base import (
    MatchRunRepository,
    MatchRunResultRepository,
    NotificationOutboxRepository,
    apply_status,
)

logger = logging.getLogger(__name__)


class InMemoryMatchRunRepository(MatchRunRepository):
    def __init__(self) -> None:
        self._runs: dict[str, MatchRun] = {}

    async def create_run(self, run: MatchRun) -> None:
        if run.id in self._runs:
            msg = f"Run {run.id} already exists"
            raise DuplicateRecordError(msg)
        self._runs[run.id] = run.model_copy(update={"status": RunStatus.PENDING})

    async def get_run(self, run_id: str) -> MatchRun:
        try:
            return self._runs[run_id].model_copy()
        except KeyError:
            msg = f"Run {run_id} not found"
            raise RecordNotFoundError(msg) from None

    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        error: str | None = None,
    ) -> MatchRun:
        run = await self.get_run(run_id)
        updated = apply_status(run, status, error)
        self._runs[run_id] = updated
        return updated.model_copy()

    async def get_pending_runs(self, run_type: RunType | None = None) -> list[MatchRun]:
        pending = [
            r.model_copy() for r in self._runs.values()
            if r.status is RunStatus.PENDING and (run_type is None or r.type is run_type)
        ]
        return sorted(pending, key=lambda r: r.created_at)

    def set_result_count(self, run_id: str, count: int) -> None:
        if run_id not in self._runs:
            msg = f"Run {run_id} not found"
            raise RecordNotFoundError(msg)
        self._runs[run_id] = self._runs[run_id].model_copy(update={"result_count": count})


class InMemoryMatchRunResultRepository(MatchRunResultRepository):
    """Result rows keyed by run. Needs the run repository to validate run ids."""

    def __init__(self, runs: InMemoryMatchRunRepository) -> None:
        self._runs = runs
        self._results: dict[str, list[MatchRunResult]] = {}

    async def save_results(self, run_id: str, results: list[MatchRunResult]) -> None:
        await self._runs.get_run(run_id)
        stored = self._results.setdefault(run_id, [])
        seen = {(r.physician_id, r.job_id) for r in stored}
        for r in results:
            key = (r.physician_id, r.job_id)
            if key in seen:
                msg = f"Run {run_id}: duplicate (physician, job) result row {key}"
                raise DuplicateRecordError(msg)
            seen.add(key)
        stored.extend(r.model_copy() for r in results)
        self._runs.set_result_count(run_id, len(stored))
        logger.debug("Saved %d results for run %s", len(results), run_id)

    async def get_results(self, run_id: str) -> list[MatchRunResult]:
        rows = [r.model_copy() for r in self._results.get(run_id, [])]
        return sorted(rows, key=lambda r: (-r.score, r.physician_id, r.job_id))


class InMemoryOutboxRepository(NotificationOutboxRepository):
    def __init__(self) -> None:
        self._items: dict[str, OutboxItem] = {}

    async def enqueue(self, items: list[OutboxItem]) -> None:
        counts = Counter(i.id for i in items)
        clashes = sorted(i for i, n in counts.items() if n > 1 or i in self._items)
        if clashes:
            msg = f"Outbox items already queued: {', '.join(clashes)}"
            raise DuplicateRecordError(msg)
        for item in items:
            self._items[item.id] = item.model_copy()

    async def get_pending(self, item_type: OutboxType | None = None) -> list[OutboxItem]:
        # dicts keep insertion order, so the stable sort breaks created_at ties by enqueue order
        pending = [
            i.model_copy() for i in self._items.values()
            if i.sent_at is None and (item_type is None or i.type is item_type)
        ]
        return sorted(pending, key=lambda i: i.created_at)

    async def mark_sent(self, item_id: str) -> None:
        item = self._get(item_id)
        self._items[item_id] = item.model_copy(
            update={"sent_at": datetime.now(), "attempts": item.attempts + 1},
        )

    async def mark_failed(self, item_id: str, error: str) -> None:
        item = self._get(item_id)
        self._items[item_id] = item.model_copy(
            update={"attempts": item.attempts + 1, "last_error": error},
        )

    def _get(self, item_id: str) -> OutboxItem:
        try:
            return self._items[item_id]
        except KeyError:
            msg = f"Outbox item {item_id} not found"
            raise RecordNotFoundError(msg) from None
