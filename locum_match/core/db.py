"""SQLite schema for match runs, run results and the notification outbox."""

import sqlite3
from pathlib import Path

_MATCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS match_runs (
    id              TEXT    PRIMARY KEY,
    type            TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'PENDING',
    job_id          TEXT,
    created_at      TEXT    NOT NULL,
    started_at      TEXT,
    completed_at    TEXT,
    error           TEXT,
    result_count    INTEGER
);
"""

_MATCH_RUN_RESULTS_TABLE = """
CREATE TABLE IF NOT EXISTS match_run_results (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id          TEXT    NOT NULL REFERENCES match_runs(id),
    physician_id    TEXT    NOT NULL,
    job_id          TEXT    NOT NULL,
    score           REAL    NOT NULL,
    breakdown_json  TEXT    NOT NULL DEFAULT '{}',
    computed_at     TEXT    NOT NULL,
    UNIQUE(run_id, physician_id, job_id)
);
"""

_OUTBOX_TABLE = """
CREATE TABLE IF NOT EXISTS notification_outbox (
    seq             INTEGER PRIMARY KEY AUTOINCREMENT,
    id              TEXT    NOT NULL UNIQUE,
    type            TEXT    NOT NULL,
    recipient_id    TEXT    NOT NULL,
    payload_json    TEXT    NOT NULL DEFAULT '{}',
    created_at      TEXT    NOT NULL,
    sent_at         TEXT,
    attempts        INTEGER NOT NULL DEFAULT 0,
    last_error      TEXT
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(_MATCH_RUNS_TABLE)
    conn.execute(_MATCH_RUN_RESULTS_TABLE)
    conn.execute(_OUTBOX_TABLE)
    conn.commit()
    return conn
