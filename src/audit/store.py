"""SQLite-based interaction audit store — connection management, schema init, and CRUD.

All database operations use parameterized queries to prevent SQL injection.
The schema is auto-created on first access via CREATE TABLE IF NOT EXISTS
(idempotent). Raw question/response text is never stored, only digests.
"""

import asyncio
import json
import logging
import sqlite3
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol, TypeVar

from src.audit.models import InteractionRecord, ReviewFlagRecord, SessionRecord
from src.config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS ai_sessions (
    session_id      TEXT PRIMARY KEY,
    caller_id       TEXT NOT NULL,
    started_at      TEXT NOT NULL,
    last_activity   TEXT NOT NULL,
    total_questions INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_sessions_caller ON ai_sessions(caller_id);

CREATE TABLE IF NOT EXISTS ai_interactions (
    id              TEXT PRIMARY KEY,
    caller_id       TEXT NOT NULL,
    session_id      TEXT NOT NULL,
    timestamp       TEXT NOT NULL,
    question_digest TEXT NOT NULL,
    response_digest TEXT NOT NULL,
    provider        TEXT NOT NULL,
    model           TEXT NOT NULL DEFAULT '',
    latency_ms      REAL DEFAULT 0.0,
    attempt_count   INTEGER DEFAULT 1,
    total_tokens    INTEGER,
    response_length INTEGER DEFAULT 0,
    risk_level      TEXT NOT NULL DEFAULT 'low',
    flags           TEXT NOT NULL DEFAULT '[]',
    review_required INTEGER NOT NULL DEFAULT 0,
    terms_version   TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_interactions_caller ON ai_interactions(caller_id, timestamp);

CREATE TABLE IF NOT EXISTS ai_review_flags (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    interaction_id TEXT NOT NULL,
    caller_id      TEXT NOT NULL,
    session_id     TEXT NOT NULL,
    risk_level     TEXT NOT NULL,
    flags          TEXT NOT NULL DEFAULT '[]',
    reason         TEXT NOT NULL DEFAULT '',
    flagged_at     TEXT NOT NULL,
    resolved       INTEGER NOT NULL DEFAULT 0,
    resolved_at    TEXT,
    resolved_by    TEXT,
    action         TEXT
);
CREATE INDEX IF NOT EXISTS idx_review_flags_open ON ai_review_flags(resolved, flagged_at);
"""


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode for concurrent reads.

    Args:
        db_path: Explicit path to the database file. If None, reads from settings.
                 Pass ":memory:" for in-memory databases (tests).

    Returns:
        A new sqlite3.Connection with row_factory set to sqlite3.Row.

    Raises:
        ValueError: If the audit store is not configured (empty db path).
    """
    if db_path is None:
        settings = get_settings()
        db_path = settings.audit_db_path
    if not db_path:
        msg = "Audit store not configured (AUDIT_DB_PATH is empty)"
        raise ValueError(msg)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they don't exist (idempotent)."""
    conn.executescript(_SCHEMA_SQL)


def get_initialized_connection(db_path: str | None = None) -> sqlite3.Connection:
    """Get a connection with schema already initialized. Convenience wrapper."""
    conn = get_connection(db_path)
    init_schema(conn)
    return conn


# ---------------------------------------------------------------------------
# Interactions
# ---------------------------------------------------------------------------


def create_interaction_record(conn: sqlite3.Connection, record: InteractionRecord) -> None:
    """Insert an interaction record. Records are immutable once written."""
    conn.execute(
        """INSERT INTO ai_interactions
           (id, caller_id, session_id, timestamp, question_digest, response_digest,
            provider, model, latency_ms, attempt_count, total_tokens, response_length,
            risk_level, flags, review_required, terms_version)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            record["id"],
            record["caller_id"],
            record["session_id"],
            record["timestamp"],
            record["question_digest"],
            record["response_digest"],
            record["provider"],
            record["model"],
            record["latency_ms"],
            record["attempt_count"],
            record["total_tokens"],
            record["response_length"],
            record["risk_level"],
            json.dumps(sorted(record["flags"])),
            int(record["review_required"]),
            record["terms_version"],
        ),
    )
    conn.commit()


def get_interaction(conn: sqlite3.Connection, interaction_id: str) -> InteractionRecord | None:
    row = conn.execute("SELECT * FROM ai_interactions WHERE id = ?", (interaction_id,)).fetchone()
    if row is None:
        return None
    return _row_to_interaction(row)


def get_caller_history(conn: sqlite3.Connection, caller_id: str, limit: int = 50) -> list[InteractionRecord]:
    """Retrieve a caller's most recent interactions, newest first."""
    rows = conn.execute(
        "SELECT * FROM ai_interactions WHERE caller_id = ? ORDER BY timestamp DESC LIMIT ?",
        (caller_id, limit),
    ).fetchall()
    return [_row_to_interaction(r) for r in rows]


def _row_to_interaction(row: sqlite3.Row) -> InteractionRecord:
    return InteractionRecord(
        id=row["id"],
        caller_id=row["caller_id"],
        session_id=row["session_id"],
        timestamp=row["timestamp"],
        question_digest=row["question_digest"],
        response_digest=row["response_digest"],
        provider=row["provider"],
        model=row["model"],
        latency_ms=row["latency_ms"],
        attempt_count=row["attempt_count"],
        total_tokens=row["total_tokens"],
        response_length=row["response_length"],
        risk_level=row["risk_level"],
        flags=json.loads(row["flags"]),
        review_required=bool(row["review_required"]),
        terms_version=row["terms_version"],
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


def increment_session_counter(conn: sqlite3.Connection, session_id: str, caller_id: str) -> int:
    """Add one question to a session, creating the session on its first question.

    Returns the session's new question count.
    """
    now = datetime.now(UTC).isoformat()
    conn.execute(
        """INSERT INTO ai_sessions (session_id, caller_id, started_at, last_activity, total_questions)
           VALUES (?, ?, ?, ?, 1)
           ON CONFLICT(session_id) DO UPDATE SET
               total_questions = total_questions + 1,
               last_activity = excluded.last_activity""",
        (session_id, caller_id, now, now),
    )
    conn.commit()
    row = conn.execute("SELECT total_questions FROM ai_sessions WHERE session_id = ?", (session_id,)).fetchone()
    return int(row["total_questions"]) if row else 0


def get_session(conn: sqlite3.Connection, session_id: str) -> SessionRecord | None:
    row = conn.execute("SELECT * FROM ai_sessions WHERE session_id = ?", (session_id,)).fetchone()
    if row is None:
        return None
    return SessionRecord(
        session_id=row["session_id"],
        caller_id=row["caller_id"],
        started_at=row["started_at"],
        last_activity=row["last_activity"],
        total_questions=row["total_questions"],
    )


# ---------------------------------------------------------------------------
# Review flags
# ---------------------------------------------------------------------------


def create_review_flag(
    conn: sqlite3.Connection,
    *,
    interaction_id: str,
    caller_id: str,
    session_id: str,
    risk_level: str,
    flags: list[str],
    reason: str = "Automated content analysis",
) -> int:
    """Open a review flag for an interaction. Returns the new row ID."""
    now = datetime.now(UTC).isoformat()
    cursor = conn.execute(
        """INSERT INTO ai_review_flags
           (interaction_id, caller_id, session_id, risk_level, flags, reason, flagged_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (interaction_id, caller_id, session_id, risk_level, json.dumps(sorted(flags)), reason, now),
    )
    conn.commit()
    return cursor.lastrowid or 0


def query_unreviewed_flags(conn: sqlite3.Connection, limit: int = 100) -> list[ReviewFlagRecord]:
    """Retrieve open review flags, most recent first."""
    rows = conn.execute(
        "SELECT * FROM ai_review_flags WHERE resolved = 0 ORDER BY flagged_at DESC, id DESC LIMIT ?",
        (limit,),
    ).fetchall()
    return [_row_to_flag(r) for r in rows]


def resolve_review_flag(conn: sqlite3.Connection, flag_id: int, *, reviewer: str, action: str) -> bool:
    """Mark a flag resolved. A flag resolves exactly once.

    Returns:
        True if the flag was open and is now resolved, False if it was
        already resolved or does not exist.
    """
    now = datetime.now(UTC).isoformat()
    cursor = conn.execute(
        """UPDATE ai_review_flags
           SET resolved = 1, resolved_at = ?, resolved_by = ?, action = ?
           WHERE id = ? AND resolved = 0""",
        (now, reviewer, action, flag_id),
    )
    conn.commit()
    return cursor.rowcount == 1


def _row_to_flag(row: sqlite3.Row) -> ReviewFlagRecord:
    return ReviewFlagRecord(
        id=row["id"],
        interaction_id=row["interaction_id"],
        caller_id=row["caller_id"],
        session_id=row["session_id"],
        risk_level=row["risk_level"],
        flags=json.loads(row["flags"]),
        reason=row["reason"],
        flagged_at=row["flagged_at"],
        resolved=bool(row["resolved"]),
        resolved_at=row["resolved_at"],
        resolved_by=row["resolved_by"],
        action=row["action"],
    )


# ---------------------------------------------------------------------------
# Async persistence contract
# ---------------------------------------------------------------------------


class InteractionStore(Protocol):
    async def create_interaction_record(self, record: InteractionRecord) -> None: ...

    async def increment_session_counter(self, session_id: str, caller_id: str) -> int: ...

    async def create_review_flag(
        self,
        *,
        interaction_id: str,
        caller_id: str,
        session_id: str,
        risk_level: str,
        flags: list[str],
    ) -> int: ...

    async def query_unreviewed_flags(self, limit: int = 100) -> list[ReviewFlagRecord]: ...


class SQLiteInteractionStore:
    """Async facade over the CRUD functions above.

    A single connection is shared; each call runs in a worker thread while
    holding a lock, so the event loop never blocks on disk I/O.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    @classmethod
    def open(cls, db_path: str | None = None) -> "SQLiteInteractionStore":
        return cls(get_initialized_connection(db_path))

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def _locked(self, fn: Callable[..., T], *args: object, **kwargs: object) -> T:
        with self._lock:
            return fn(self._conn, *args, **kwargs)

    async def create_interaction_record(self, record: InteractionRecord) -> None:
        await asyncio.to_thread(self._locked, create_interaction_record, record)

    async def increment_session_counter(self, session_id: str, caller_id: str) -> int:
        return await asyncio.to_thread(self._locked, increment_session_counter, session_id, caller_id)

    async def create_review_flag(
        self,
        *,
        interaction_id: str,
        caller_id: str,
        session_id: str,
        risk_level: str,
        flags: list[str],
    ) -> int:
        return await asyncio.to_thread(
            self._locked,
            create_review_flag,
            interaction_id=interaction_id,
            caller_id=caller_id,
            session_id=session_id,
            risk_level=risk_level,
            flags=flags,
        )

    async def query_unreviewed_flags(self, limit: int = 100) -> list[ReviewFlagRecord]:
        return await asyncio.to_thread(self._locked, query_unreviewed_flags, limit)

    async def resolve_review_flag(self, flag_id: int, *, reviewer: str, action: str) -> bool:
        return await asyncio.to_thread(self._locked, resolve_review_flag, flag_id, reviewer=reviewer, action=action)

    async def get_caller_history(self, caller_id: str, limit: int = 50) -> list[InteractionRecord]:
        return await asyncio.to_thread(self._locked, get_caller_history, caller_id, limit)

    async def ping(self) -> bool:
        await asyncio.to_thread(self._locked, lambda conn: conn.execute("SELECT 1").fetchone())
        return True

    def close(self) -> None:
        with self._lock:
            self._conn.close()
