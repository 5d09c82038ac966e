"""Integration tests: orchestrator runs against in-memory repositories."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from locum_match.core.config import DigestConfig, Settings, ShortTermConfig
from locum_match.core.errors import (
    DuplicateRecordError,
    JobNotFoundError,
    NotShortTermJobError,
    RecordNotFoundError,
)
from locum_match.core.schemas import (
    AvailabilityWindow,
    DateRange,
    GeoCoordinates,
    LocumJob,
    OutboxType,
    Physician,
    Reservation,
    RunStatus,
    RunType,
    SearchResult,
)
from locum_match.persistence.memory import (
    InMemoryMatchRunRepository,
    InMemoryMatchRunResultRepository,
    InMemoryOutboxRepository,
)
from locum_match.pipeline.orchestrator import (
    JobMatch,
    MatchOrchestrator,
    is_active_job,
    select_top_matches,
)
from locum_match.sources.file import Dataset, FileDataSource

NOW = datetime(2025, 7, 10)
TORONTO = GeoCoordinates(lat=43.6532, lng=-79.3832)
VANCOUVER = GeoCoordinates(lat=49.2827, lng=-123.1207)


def _physician(id: str, **overrides: object) -> Physician:
    defaults: dict[str, object] = {
        "id": id,
        "med_profession": "Physician",
        "med_speciality": "Family Medicine",
    }
    defaults.update(overrides)
    return Physician(**defaults)  # type: ignore[arg-type]


def _job(id: str, start: datetime, end: datetime, **overrides: object) -> LocumJob:
    defaults: dict[str, object] = {
        "id": id,
        "reference": f"REF-{id}",
        "post_title": f"Locum {id}",
        "med_profession": "Physician",
        "med_speciality": "Family Medicine",
        "location": TORONTO,
        "full_address": {"city": "Toronto", "province": "ON"},
        "date_range": DateRange(start=start, end=end),
    }
    defaults.update(overrides)
    return LocumJob(**defaults)  # type: ignore[arg-type]


def _dataset(reservations: list[Reservation] | None = None) -> Dataset:
    physicians = [
        # Same city, available for the whole of July, prefers ON
        _physician(
            "p1",
            location=TORONTO,
            preferred_provinces=["ON"],
            availability=[AvailabilityWindow(start=datetime(2025, 7, 1), end=datetime(2025, 7, 31))],
        ),
        # No optional data at all: every non-speciality category neutral
        _physician("p2"),
        # Far away, available in August only, prefers BC
        _physician(
            "p3",
            location=VANCOUVER,
            preferred_provinces=["BC"],
            availability=[AvailabilityWindow(start=datetime(2025, 8, 1), end=datetime(2025, 8, 31))],
        ),
        _physician("p4", med_speciality="Radiology", location=TORONTO),
        _physician("p5", is_looking_for_locums=False, location=TORONTO),
    ]
    jobs = [
        # Six days, a few days out: short-term
        _job("j1", datetime(2025, 7, 15), datetime(2025, 7, 21)),
        # Three months, weekdays, far out: not short-term, still open
        _job(
            "j2", datetime(2025, 9, 1), datetime(2025, 11, 30),
            schedule="Weekdays", reservation_status="Pending",
        ),
        # Already filled: excluded from the digest
        _job("j3", datetime(2025, 9, 1), datetime(2025, 11, 30), reservation_status="Completed"),
    ]
    return Dataset(physicians=physicians, jobs=jobs, reservations=reservations or [])


class Harness:
    def __init__(self, settings: Settings | None = None, source: FileDataSource | None = None) -> None:
        self.settings = settings or Settings()
        self.source = source or FileDataSource(_dataset())
        self.runs = InMemoryMatchRunRepository()
        self.results = InMemoryMatchRunResultRepository(self.runs)
        self.outbox = InMemoryOutboxRepository()
        self.orchestrator = MatchOrchestrator(
            self.settings, self.source, self.runs, self.results, self.outbox,
            clock=lambda: NOW,
        )


class BrokenSource(FileDataSource):
    """Fails when the physician pool is loaded."""

    def __init__(self, error: BaseException) -> None:
        super().__init__(_dataset())
        self._error = error

    async def list_physicians(self) -> list[Physician]:
        raise self._error


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestIsActiveJob:
    def test_statuses(self) -> None:
        config = DigestConfig()
        jobs = {j.id: j for j in _dataset().jobs}
        assert is_active_job(jobs["j1"], config)
        assert is_active_job(jobs["j2"], config)
        assert not is_active_job(jobs["j3"], config)


class TestSelectTopMatches:
    def test_one_per_job_best_first(self) -> None:
        jobs = {j.id: j for j in _dataset().jobs}
        matches = [
            JobMatch(jobs["j2"], SearchResult(physician_id="p1", score=0.7)),
            JobMatch(jobs["j1"], SearchResult(physician_id="p1", score=0.7)),
            JobMatch(jobs["j2"], SearchResult(physician_id="p1", score=0.9)),
            JobMatch(jobs["j3"], SearchResult(physician_id="p1", score=0.8)),
        ]
        top = select_top_matches(matches, 2)
        assert [(m.job.id, m.result.score) for m in top] == [("j2", 0.9), ("j3", 0.8)]

    def test_ties_by_job_id(self) -> None:
        jobs = {j.id: j for j in _dataset().jobs}
        matches = [
            JobMatch(jobs["j2"], SearchResult(physician_id="p1", score=0.7)),
            JobMatch(jobs["j1"], SearchResult(physician_id="p1", score=0.7)),
        ]
        assert [m.job.id for m in select_top_matches(matches, 5)] == ["j1", "j2"]


# ---------------------------------------------------------------------------
# Short-term runs
# ---------------------------------------------------------------------------


class TestShortTermRun:
    async def test_happy_path(self) -> None:
        h = Harness()
        run_id = await h.orchestrator.run_for_job("j1")

        run = await h.runs.get_run(run_id)
        assert run.status is RunStatus.COMPLETED
        assert run.type is RunType.SHORT_TERM
        assert run.job_id == "j1"
        assert run.created_at == NOW
        assert run.started_at is not None
        assert run.completed_at is not None
        assert run.error is None
        assert run.result_count == 2

        rows = await h.results.get_results(run_id)
        assert [r.physician_id for r in rows] == ["p1", "p2"]
        assert rows[0].score == pytest.approx(10.5 / 11)
        assert rows[1].score == pytest.approx(7 / 11)
        assert all(r.job_id == "j1" for r in rows)

        items = await h.outbox.get_pending(OutboxType.SHORT_TERM_MATCH)
        assert [i.recipient_id for i in items] == ["p1", "p2"]
        payload = items[0].payload
        assert payload["run_id"] == run_id
        assert payload["job_id"] == "j1"
        assert payload["job_reference"] == "REF-j1"
        assert payload["score"] == pytest.approx(10.5 / 11)
        assert payload["breakdown"]["speciality"] == 1.0

    async def test_nobody_above_threshold(self) -> None:
        h = Harness(Settings(short_term=ShortTermConfig(notification_threshold=0.99)))
        run_id = await h.orchestrator.run_for_job("j1")
        run = await h.runs.get_run(run_id)
        assert run.status is RunStatus.COMPLETED
        assert run.result_count == 0
        assert await h.outbox.get_pending() == []

    async def test_job_not_found(self) -> None:
        h = Harness()
        with pytest.raises(JobNotFoundError):
            await h.orchestrator.run_for_job("nope", run_id="r1")
        with pytest.raises(RecordNotFoundError):
            await h.runs.get_run("r1")

    async def test_not_short_term(self) -> None:
        h = Harness()
        with pytest.raises(NotShortTermJobError):
            await h.orchestrator.run_for_job("j2", run_id="r1")
        with pytest.raises(RecordNotFoundError):
            await h.runs.get_run("r1")
        assert await h.outbox.get_pending() == []

    async def test_aware_job_dates_with_default_clock(self) -> None:
        # 60 days long with no schedule keyword: only the lead rule can match
        start = datetime.now(timezone.utc) + timedelta(days=2)
        job = _job("j-utc", start, start + timedelta(days=60))
        source = FileDataSource(Dataset(physicians=[_physician("p2")], jobs=[job]))
        runs = InMemoryMatchRunRepository()
        results = InMemoryMatchRunResultRepository(runs)
        orchestrator = MatchOrchestrator(
            Settings(), source, runs, results, InMemoryOutboxRepository(),
        )
        run_id = await orchestrator.run_for_job("j-utc")
        assert (await runs.get_run(run_id)).status is RunStatus.COMPLETED
        assert [r.physician_id for r in await results.get_results(run_id)] == ["p2"]

    async def test_reservation_conflict_excludes_physician(self) -> None:
        booking = Reservation(
            id="res-1",
            locum_job_id="elsewhere",
            reserved_by="p1",
            status="Ongoing",
            reservation_date=DateRange(start=datetime(2025, 7, 16), end=datetime(2025, 7, 18)),
        )
        h = Harness(source=FileDataSource(_dataset([booking])))
        run_id = await h.orchestrator.run_for_job("j1")
        assert [r.physician_id for r in await h.results.get_results(run_id)] == ["p2"]

    async def test_source_failure_marks_run_failed(self) -> None:
        h = Harness(source=BrokenSource(RuntimeError("physician store unavailable")))
        with pytest.raises(RuntimeError, match="physician store unavailable"):
            await h.orchestrator.run_for_job("j1", run_id="r1")
        run = await h.runs.get_run("r1")
        assert run.status is RunStatus.FAILED
        assert run.error == "physician store unavailable"
        assert run.completed_at is not None
        assert await h.outbox.get_pending() == []

    async def test_empty_error_message_uses_exception_name(self) -> None:
        h = Harness(source=BrokenSource(RuntimeError()))
        with pytest.raises(RuntimeError):
            await h.orchestrator.run_for_job("j1", run_id="r1")
        assert (await h.runs.get_run("r1")).error == "RuntimeError"

    async def test_cancellation_marks_run_failed(self) -> None:
        h = Harness(source=BrokenSource(asyncio.CancelledError()))
        with pytest.raises(asyncio.CancelledError):
            await h.orchestrator.run_for_job("j1", run_id="r1")
        run = await h.runs.get_run("r1")
        assert run.status is RunStatus.FAILED
        assert run.error == "CancelledError"

    async def test_reused_run_id_does_not_notify_twice(self) -> None:
        h = Harness()
        await h.orchestrator.run_for_job("j1", run_id="r1")
        with pytest.raises(DuplicateRecordError):
            await h.orchestrator.run_for_job("j1", run_id="r1")
        assert len(await h.outbox.get_pending()) == 2
        assert (await h.runs.get_run("r1")).status is RunStatus.COMPLETED


# ---------------------------------------------------------------------------
# Weekly digest runs
# ---------------------------------------------------------------------------


class TestWeeklyDigestRun:
    async def test_digest_per_physician(self) -> None:
        h = Harness()
        run_id = await h.orchestrator.run_weekly()

        run = await h.runs.get_run(run_id)
        assert run.status is RunStatus.COMPLETED
        assert run.type is RunType.WEEKLY_DIGEST
        assert run.job_id is None

        items = await h.outbox.get_pending(OutboxType.WEEKLY_DIGEST)
        assert [i.recipient_id for i in items] == ["p1", "p2"]
        p1 = items[0].payload
        assert p1["run_id"] == run_id
        assert [m["job_id"] for m in p1["matches"]] == ["j1", "j2"]
        assert p1["matches"][1]["score"] == pytest.approx(8.5 / 11)

    async def test_inactive_jobs_skipped(self) -> None:
        h = Harness()
        run_id = await h.orchestrator.run_weekly()
        rows = await h.results.get_results(run_id)
        assert "j3" not in {r.job_id for r in rows}

    async def test_top_n_and_tie_break(self) -> None:
        h = Harness(Settings(digest=DigestConfig(top_n=1)))
        run_id = await h.orchestrator.run_weekly()
        items = await h.outbox.get_pending()
        by_recipient = {i.recipient_id: i.payload["matches"] for i in items}
        assert [m["job_id"] for m in by_recipient["p1"]] == ["j1"]
        # p2 scores the same on j1 and j2; the lower job id wins
        assert [m["job_id"] for m in by_recipient["p2"]] == ["j1"]
        assert (await h.runs.get_run(run_id)).result_count == 2

    async def test_no_duplicate_rows(self) -> None:
        h = Harness()
        run_id = await h.orchestrator.run_weekly()
        rows = await h.results.get_results(run_id)
        pairs = [(r.physician_id, r.job_id) for r in rows]
        assert len(pairs) == len(set(pairs))
        assert len(rows) == 4

    async def test_nobody_qualifies(self) -> None:
        h = Harness(Settings(digest=DigestConfig(notification_threshold=0.99)))
        run_id = await h.orchestrator.run_weekly()
        run = await h.runs.get_run(run_id)
        assert run.status is RunStatus.COMPLETED
        assert run.result_count == 0
        assert await h.outbox.get_pending() == []

    async def test_failure_marks_run_failed(self) -> None:
        h = Harness(source=BrokenSource(RuntimeError("physician store unavailable")))
        with pytest.raises(RuntimeError):
            await h.orchestrator.run_weekly(run_id="w1")
        run = await h.runs.get_run("w1")
        assert run.status is RunStatus.FAILED
        assert run.error == "physician store unavailable"


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrentRuns:
    async def test_independent_runs_all_complete(self) -> None:
        h = Harness()
        run_ids = await asyncio.gather(
            h.orchestrator.run_for_job("j1"),
            h.orchestrator.run_weekly(),
            h.orchestrator.run_for_job("j1"),
        )
        assert len(set(run_ids)) == 3
        for run_id in run_ids:
            assert (await h.runs.get_run(run_id)).status is RunStatus.COMPLETED
        assert len(await h.outbox.get_pending(OutboxType.SHORT_TERM_MATCH)) == 4
        assert len(await h.outbox.get_pending(OutboxType.WEEKLY_DIGEST)) == 2

    async def test_failure_does_not_affect_other_runs(self) -> None:
        healthy = Harness()
        broken = MatchOrchestrator(
            healthy.settings, BrokenSource(RuntimeError("boom")),
            healthy.runs, healthy.results, healthy.outbox, clock=lambda: NOW,
        )
        ok, failed = await asyncio.gather(
            healthy.orchestrator.run_for_job("j1", run_id="ok"),
            broken.run_for_job("j1", run_id="bad"),
            return_exceptions=True,
        )
        assert ok == "ok"
        assert isinstance(failed, RuntimeError)
        assert (await healthy.runs.get_run("ok")).status is RunStatus.COMPLETED
        assert (await healthy.runs.get_run("bad")).status is RunStatus.FAILED
