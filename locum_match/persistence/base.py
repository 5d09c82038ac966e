"""Abstract repositories for run records, run results and the notification outbox.

The matching core depends only on these interfaces; any backing store can
implement them. Methods are coroutines because storage calls are the points
where a run may suspend.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from locum_match.core.errors import InvalidTransitionError
from locum_match.core.schemas import (
    MatchRun,
    MatchRunResult,
    OutboxItem,
    OutboxType,
    RunStatus,
    RunType,
)


def apply_status(
    run: MatchRun,
    status: RunStatus,
    error: str | None = None,
    now: datetime | None = None,
) -> MatchRun:
    """Return a copy of ``run`` moved to ``status``, enforcing the transition table."""
    if not run.status.can_transition_to(status):
        msg = f"Run {run.id}: cannot move from {run.status.value} to {status.value}"
        raise InvalidTransitionError(msg)
    now = now or datetime.now()
    update: dict[str, object] = {"status": status}
    if status is RunStatus.RUNNING:
        update["started_at"] = now
    if status.is_terminal:
        update["completed_at"] = now
    if status is RunStatus.FAILED and error is not None:
        update["error"] = error
    return run.model_copy(update=update)


class MatchRunRepository(ABC):
    """Stores one record per matching execution."""

    @abstractmethod
    async def create_run(self, run: MatchRun) -> None:
        """Store a new run in PENDING. Raises DuplicateRecordError on a reused id."""

    @abstractmethod
    async def get_run(self, run_id: str) -> MatchRun:
        """Return the run. Raises RecordNotFoundError if it does not exist."""

    @abstractmethod
    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        error: str | None = None,
    ) -> MatchRun:
        """Move a run to ``status`` and stamp the matching timestamp.

        Raises RecordNotFoundError for an unknown run and
        InvalidTransitionError for a backward or post-terminal move.
        """

    @abstractmethod
    async def get_pending_runs(self, run_type: RunType | None = None) -> list[MatchRun]:
        """Return PENDING runs, oldest first."""


class MatchRunResultRepository(ABC):
    """Stores ranked result rows per run."""

    @abstractmethod
    async def save_results(self, run_id: str, results: list[MatchRunResult]) -> None:
        """Write all rows for a run and update the run's result_count."""

    @abstractmethod
    async def get_results(self, run_id: str) -> list[MatchRunResult]:
        """Return the run's rows sorted by score descending."""


class NotificationOutboxRepository(ABC):
    """Queue of notifications waiting for an external sender."""

    @abstractmethod
    async def enqueue(self, items: list[OutboxItem]) -> None:
        """Add items. Raises DuplicateRecordError if any id is already queued."""

    @abstractmethod
    async def get_pending(self, item_type: OutboxType | None = None) -> list[OutboxItem]:
        """Return unsent items, oldest first."""

    @abstractmethod
    async def mark_sent(self, item_id: str) -> None:
        """Stamp sent_at and count the attempt. Raises RecordNotFoundError."""

    @abstractmethod
    async def mark_failed(self, item_id: str, error: str) -> None:
        """Count a failed attempt and keep the error. Raises RecordNotFoundError."""
