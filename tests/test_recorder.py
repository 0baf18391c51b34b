"""Unit tests for the interaction recorder."""

import hashlib
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.audit.recorder import InteractionRecorder, compute_digest
from src.audit.store import SQLiteInteractionStore, get_connection, get_session, init_schema
from src.generation.models import AttemptFailure, AttemptSuccess, GenerationAttempt, TokenUsage

QUESTION = "My knee has been in pain for weeks, should I see a doctor?"
RESPONSE = "Please consult a doctor before training again."


def _trace() -> list[GenerationAttempt]:
    now = datetime.now(UTC)
    return [
        GenerationAttempt(
            provider="openai",
            model="gpt-4o-mini",
            started_at=now,
            latency_ms=120.0,
            outcome=AttemptFailure(reason="timed out after 10s", timed_out=True),
        ),
        GenerationAttempt(
            provider="anthropic",
            model="claude-3-5-haiku-latest",
            started_at=now,
            latency_ms=80.0,
            outcome=AttemptSuccess(text=RESPONSE, token_usage=TokenUsage(prompt=10, completion=20, total=30)),
        ),
    ]


@pytest.fixture
def sqlite_store() -> SQLiteInteractionStore:
    conn = get_connection(":memory:")
    init_schema(conn)
    return SQLiteInteractionStore(conn)


def _mock_store() -> MagicMock:
    store = MagicMock()
    store.create_interaction_record = AsyncMock()
    store.increment_session_counter = AsyncMock(return_value=1)
    store.create_review_flag = AsyncMock(return_value=1)
    store.query_unreviewed_flags = AsyncMock(return_value=[])
    return store


class TestComputeDigest:
    def test_sha256_hex(self) -> None:
        assert compute_digest("abc") == hashlib.sha256(b"abc").hexdigest()

    def test_is_one_way_fingerprint(self) -> None:
        digest = compute_digest(QUESTION)
        assert len(digest) == 64
        assert "knee" not in digest


class TestRecord:
    async def test_high_risk_interaction_is_flagged_once(self, sqlite_store: SQLiteInteractionStore) -> None:
        recorder = InteractionRecorder(sqlite_store, terms_version="2.1")

        await recorder.record("user-1", "sess-1", QUESTION, RESPONSE, _trace())

        rows = sqlite_store.connection.execute("SELECT * FROM ai_interactions").fetchall()
        assert len(rows) == 1
        row = rows[0]
        assert row["risk_level"] == "high"
        assert row["provider"] == "anthropic"
        assert row["model"] == "claude-3-5-haiku-latest"
        assert row["attempt_count"] == 2
        assert row["latency_ms"] == pytest.approx(200.0)
        assert row["total_tokens"] == 30
        assert row["terms_version"] == "2.1"
        assert row["question_digest"] == compute_digest(QUESTION)
        assert row["response_digest"] == compute_digest(RESPONSE)

        flags = await sqlite_store.query_unreviewed_flags()
        assert len(flags) == 1
        assert flags[0]["interaction_id"] == row["id"]
        assert set(flags[0]["flags"]) == {"injury_related", "medical_advice"}

        session = get_session(sqlite_store.connection, "sess-1")
        assert session is not None and session["total_questions"] == 1

    async def test_raw_text_is_not_persisted(self, sqlite_store: SQLiteInteractionStore) -> None:
        recorder = InteractionRecorder(sqlite_store)
        await recorder.record("user-1", "sess-1", QUESTION, RESPONSE, _trace())

        dump = "\n".join(sqlite_store.connection.iterdump())
        assert QUESTION not in dump
        assert RESPONSE not in dump

    async def test_low_risk_interaction_is_not_flagged(self, sqlite_store: SQLiteInteractionStore) -> None:
        recorder = InteractionRecorder(sqlite_store)
        await recorder.record("user-1", "sess-1", "How do I pass better?", "Lock your ankle.", _trace())

        assert await sqlite_store.query_unreviewed_flags() == []

    async def test_medium_risk_without_review_is_not_flagged(self) -> None:
        store = _mock_store()
        recorder = InteractionRecorder(store)

        await recorder.record("user-1", "sess-1", "I hurt my ankle", "Rest and ease back in.", _trace())

        store.create_interaction_record.assert_awaited_once()
        store.create_review_flag.assert_not_awaited()

    async def test_session_counter_accumulates(self, sqlite_store: SQLiteInteractionStore) -> None:
        recorder = InteractionRecorder(sqlite_store)
        for _ in range(3):
            await recorder.record("user-1", "sess-1", "q", "a", _trace())

        session = get_session(sqlite_store.connection, "sess-1")
        assert session is not None and session["total_questions"] == 3


class TestFailureIsolation:
    async def test_persist_failure_is_swallowed(self) -> None:
        store = _mock_store()
        store.create_interaction_record.side_effect = RuntimeError("disk full")
        recorder = InteractionRecorder(store)

        await recorder.record("user-1", "sess-1", QUESTION, RESPONSE, _trace())

        # Independent writes still happen.
        store.increment_session_counter.assert_awaited_once_with("sess-1", "user-1")
        store.create_review_flag.assert_awaited_once()

    async def test_counter_failure_does_not_block_flag(self) -> None:
        store = _mock_store()
        store.increment_session_counter.side_effect = RuntimeError("locked")
        recorder = InteractionRecorder(store)

        await recorder.record("user-1", "sess-1", QUESTION, RESPONSE, _trace())

        store.create_interaction_record.assert_awaited_once()
        store.create_review_flag.assert_awaited_once()

    async def test_flag_failure_is_swallowed(self) -> None:
        store = _mock_store()
        store.create_review_flag.side_effect = RuntimeError("boom")
        recorder = InteractionRecorder(store)

        await recorder.record("user-1", "sess-1", QUESTION, RESPONSE, _trace())

    async def test_classifier_failure_is_swallowed(self) -> None:
        store = _mock_store()

        def broken(question: str, response: str) -> Any:
            raise ValueError("bad rule")

        recorder = InteractionRecorder(store, classifier=broken)
        await recorder.record("user-1", "sess-1", QUESTION, RESPONSE, _trace())

        store.create_interaction_record.assert_not_awaited()


class TestDispatch:
    async def test_dispatch_runs_in_background_and_drains(self) -> None:
        store = _mock_store()
        recorder = InteractionRecorder(store)

        task = recorder.dispatch("user-1", "sess-1", QUESTION, RESPONSE, _trace())
        assert recorder.pending == 1

        await recorder.drain()

        assert task.done()
        assert recorder.pending == 0
        store.create_interaction_record.assert_awaited_once()

    async def test_drain_with_nothing_pending(self) -> None:
        await InteractionRecorder(_mock_store()).drain()
