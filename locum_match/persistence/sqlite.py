"""SQLite-backed repositories built on the schema in core/db.py."""

import json
import logging
import sqlite3
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


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_run(row: sqlite3.Row) -> MatchRun:
    return MatchRun(
        id=row["id"],
        type=RunType(row["type"]),
        status=RunStatus(row["status"]),
        job_id=row["job_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        started_at=_parse_ts(row["started_at"]),
        completed_at=_parse_ts(row["completed_at"]),
        error=row["error"],
        result_count=row["result_count"],
    )


def _row_to_item(row: sqlite3.Row) -> OutboxItem:
    return OutboxItem(
        id=row["id"],
        type=OutboxType(row["type"]),
        recipient_id=row["recipient_id"],
        payload=json.loads(row["payload_json"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        sent_at=_parse_ts(row["sent_at"]),
        attempts=row["attempts"],
        last_error=row["last_error"],
    )


class SqliteMatchRunRepository(MatchRunRepository):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def create_run(self, run: MatchRun) -> None:
        try:
            self._conn.execute(
                """
                INSERT INTO match_runs
                    (id, type, status, job_id, created_at, started_at, completed_at,
                     error, result_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.id,
                    run.type.value,
                    RunStatus.PENDING.value,
                    run.job_id,
                    run.created_at.isoformat(),
                    _ts(run.started_at),
                    _ts(run.completed_at),
                    run.error,
                    run.result_count,
                ),
            )
            self._conn.commit()
        except sqlite3.IntegrityError as e:
            msg = f"Run {run.id} already exists"
            raise DuplicateRecordError(msg) from e

    async def get_run(self, run_id: str) -> MatchRun:
        row = self._conn.execute(
            "SELECT * FROM match_runs WHERE id = ?", (run_id,),
        ).fetchone()
        if row is None:
            msg = f"Run {run_id} not found"
            raise RecordNotFoundError(msg)
        return _row_to_run(row)

    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        error: str | None = None,
    ) -> MatchRun:
        run = apply_status(await self.get_run(run_id), status, error)
        self._conn.execute(
            """
            UPDATE match_runs
            SET status = ?, started_at = ?, completed_at = ?, error = ?
            WHERE id = ?
            """,
            (run.status.value, _ts(run.started_at), _ts(run.completed_at), run.error, run_id),
        )
        self._conn.commit()
        return run

    async def get_pending_runs(self, run_type: RunType | None = None) -> list[MatchRun]:
        sql = "SELECT * FROM match_runs WHERE status = ?"
        params: list[str] = [RunStatus.PENDING.value]
        if run_type is not None:
            sql += " AND type = ?"
            params.append(run_type.value)
        sql += " ORDER BY created_at ASC, rowid ASC"
        return [_row_to_run(row) for row in self._conn.execute(sql, params).fetchall()]


class SqliteMatchRunResultRepository(MatchRunResultRepository):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def save_results(self, run_id: str, results: list[MatchRunResult]) -> None:
        exists = self._conn.execute(
            "SELECT 1 FROM match_runs WHERE id = ?", (run_id,),
        ).fetchone()
        if exists is None:
            msg = f"Run {run_id} not found"
            raise RecordNotFoundError(msg)

        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO match_run_results
                        (run_id, physician_id, job_id, score, breakdown_json, computed_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            run_id,
                            r.physician_id,
                            r.job_id,
                            r.score,
                            json.dumps(r.breakdown, sort_keys=True),
                            r.computed_at.isoformat(),
                        )
                        for r in results
                    ],
                )
                self._conn.execute(
                    """
                    UPDATE match_runs
                    SET result_count = (SELECT COUNT(*) FROM match_run_results WHERE run_id = ?)
                    WHERE id = ?
                    """,
                    (run_id, run_id),
                )
        except sqlite3.IntegrityError as e:
            msg = f"Run {run_id}: duplicate (physician, job) result row"
            raise DuplicateRecordError(msg) from e
        logger.debug("Saved %d results for run %s", len(results), run_id)

    async def get_results(self, run_id: str) -> list[MatchRunResult]:
        rows = self._conn.execute(
            """
            SELECT * FROM match_run_results
            WHERE run_id = ?
            ORDER BY score DESC, physician_id ASC, job_id ASC
            """,
            (run_id,),
        ).fetchall()
        return [
            MatchRunResult(
                run_id=row["run_id"],
                physician_id=row["physician_id"],
                job_id=row["job_id"],
                score=row["score"],
                breakdown=json.loads(row["breakdown_json"]),
                computed_at=datetime.fromisoformat(row["computed_at"]),
            )
            for row in rows
        ]


class SqliteOutboxRepository(NotificationOutboxRepository):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    async def enqueue(self, items: list[OutboxItem]) -> None:
        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO notification_outbox
                        (id, type, recipient_id, payload_json, created_at, sent_at,
                         attempts, last_error)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            i.id,
                            i.type.value,
                            i.recipient_id,
                            json.dumps(i.payload, default=str),
                            i.created_at.isoformat(),
                            _ts(i.sent_at),
                            i.attempts,
                            i.last_error,
                        )
                        for i in items
                    ],
                )
        except sqlite3.IntegrityError as e:
            msg = "Outbox item id already queued"
            raise DuplicateRecordError(msg) from e

    async def get_pending(self, item_type: OutboxType | None = None) -> list[OutboxItem]:
        sql = "SELECT * FROM notification_outbox WHERE sent_at IS NULL"
        params: list[str] = []
        if item_type is not None:
            sql += " AND type = ?"
            params.append(item_type.value)
        sql += " ORDER BY created_at ASC, seq ASC"
        return [_row_to_item(row) for row in self._conn.execute(sql, params).fetchall()]

    async def mark_sent(self, item_id: str) -> None:
        cursor = self._conn.execute(
            """
            UPDATE notification_outbox
            SET sent_at = ?, attempts = attempts + 1
            WHERE id = ?
            """,
            (datetime.now().isoformat(), item_id),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            msg = f"Outbox item {item_id} not found"
            raise RecordNotFoundError(msg)

    async def mark_failed(self, item_id: str, error: str) -> None:
        cursor = self._conn.execute(
            """
            UPDATE notification_outbox
            SET attempts = attempts + 1, last_error = ?
            WHERE id = ?
            """,
            (error, item_id),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            msg = f"Outbox item {item_id} not found"
            raise RecordNotFoundError(msg)
