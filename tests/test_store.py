"""Tests for the SQLite memory store."""

from datetime import timedelta

import pytest

from conftest import seed_messages
from kalito.memory.types import ConversationSummary, Message, SemanticPin, utc_now
from kalito.store.base import StoreError
from kalito.store.sqlite import SQLiteMemoryStore


# ── Messages ────────────────────────────────────────────────────────


class TestMessages:
    def test_insert_assigns_increasing_ids(self, store):
        stored = seed_messages(store, "s1", ["a", "b", "c"])
        assert [m.id for m in stored] == sorted(m.id for m in stored)
        assert store.count_messages("s1") == 3

    def test_fetch_desc_with_offset(self, store):
        seed_messages(store, "s1", ["m1", "m2", "m3", "m4"])
        result = store.fetch_messages("s1", order="desc", limit=2, offset=1)
        assert [m.text for m in result] == ["m3", "m2"]

    def test_fetch_asc(self, store):
        seed_messages(store, "s1", ["m1", "m2", "m3"])
        assert [m.text for m in store.fetch_messages("s1", order="asc")] == ["m1", "m2", "m3"]

    def test_sessions_are_isolated(self, store):
        seed_messages(store, "s1", ["a"])
        seed_messages(store, "s2", ["b", "c"])
        assert store.count_messages("s1") == 1
        assert [m.text for m in store.fetch_messages("s2", order="asc")] == ["b", "c"]

    def test_fetch_in_range(self, store):
        stored = seed_messages(store, "s1", ["m1", "m2", "m3", "m4"])
        result = store.fetch_messages_in_range("s1", stored[1].id, stored[2].id)
        assert [m.text for m in result] == ["m2", "m3"]

    def test_since_is_strict(self, store):
        stored = seed_messages(store, "s1", ["m1", "m2", "m3"])
        since = stored[1].created_at
        assert store.count_messages_since("s1", since) == 1
        assert [m.text for m in store.fetch_messages_since("s1", since)] == ["m3"]

    def test_round_trip_fields(self, store):
        message = Message(
            id=0,
            session_id="s1",
            role="assistant",
            text="hello",
            model_id="phi3-mini",
            importance_score=0.55,
            token_usage=42,
        )
        store.insert_message(message)
        (loaded,) = store.fetch_messages("s1")
        assert loaded.role == "assistant"
        assert loaded.model_id == "phi3-mini"
        assert loaded.token_usage == 42
        assert loaded.created_at == message.created_at

    def test_update_importance(self, store):
        (stored,) = seed_messages(store, "s1", ["a"])
        store.update_message_importance(stored.id, 0.9)
        assert store.fetch_messages("s1")[0].importance_score == pytest.approx(0.9)

    def test_invalid_role_raises_store_error(self, store):
        with pytest.raises(StoreError):
            store.insert_message(Message(id=0, session_id="s1", role="robot", text="x"))


# ── Summaries and pins ──────────────────────────────────────────────


class TestSummariesAndPins:
    def _summary(self, id: str, start: int, minutes_ago: int) -> ConversationSummary:
        return ConversationSummary(
            id=id,
            session_id="s1",
            summary_text=f"summary {id}",
            message_count=15,
            start_message_id=start,
            end_message_id=start + 14,
            importance_score=0.7,
            created_at=utc_now() - timedelta(minutes=minutes_ago),
        )

    def test_summaries_most_recent_first(self, store):
        store.insert_summary(self._summary("old", 1, 10))
        store.insert_summary(self._summary("new", 16, 1))
        assert [s.id for s in store.fetch_summaries("s1")] == ["new", "old"]
        assert store.fetch_last_summary("s1").id == "new"

    def test_no_summary(self, store):
        assert store.fetch_last_summary("s1") is None

    def test_pins_by_importance_then_recency(self, store):
        now = utc_now()
        store.insert_pin(SemanticPin(id="a", session_id="s1", content="a", importance_score=0.5,
                                     created_at=now - timedelta(minutes=5)))
        store.insert_pin(SemanticPin(id="b", session_id="s1", content="b", importance_score=0.9))
        store.insert_pin(SemanticPin(id="c", session_id="s1", content="c", importance_score=0.5,
                                     created_at=now))
        assert [p.id for p in store.fetch_pins("s1")] == ["b", "c", "a"]
        assert [p.id for p in store.fetch_pins("s1", limit=1)] == ["b"]


# ── Sessions and stats ──────────────────────────────────────────────


class TestSessions:
    def test_session_model(self, store):
        store.create_session("s1", "phi3-mini")
        assert store.get_session_model("s1") == "phi3-mini"

    def test_session_model_falls_back_to_messages(self, store):
        seed_messages(store, "s1", ["a", "b"], model_id="gpt-4.1-nano")
        assert store.get_session_model("s1") == "gpt-4.1-nano"

    def test_unknown_session_model(self, store):
        assert store.get_session_model("nope") is None

    def test_stats(self, store):
        seed_messages(store, "s1", ["a", "b"])
        store.insert_pin(SemanticPin(id="p", session_id="s1", content="fact"))
        result = store.stats("s1")
        assert result.total_messages == 2
        assert result.total_pins == 1
        assert result.total_summaries == 0
        assert result.average_importance_score == pytest.approx(0.5)
        assert result.oldest_message < result.newest_message

    def test_stats_empty(self, store):
        result = store.stats("empty")
        assert result.total_messages == 0
        assert result.oldest_message == ""

    def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "db" / "memory.db"
        seed_messages(SQLiteMemoryStore(path), "s1", ["a"])
        assert SQLiteMemoryStore(path).count_messages("s1") == 1
