"""SQLite implementation of the memory store."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from loguru import logger

from kalito.memory.types import (
    ConversationSummary,
    MemoryStats,
    Message,
    SemanticPin,
    utc_now,
)
from kalito.store.base import SortOrder, StoreError

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    model_id TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('system', 'user', 'assistant')),
    text TEXT NOT NULL,
    model_id TEXT NOT NULL DEFAULT '',
    token_usage INTEGER,
    importance_score REAL NOT NULL DEFAULT 0.5,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS conversation_summaries (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    summary_text TEXT NOT NULL,
    message_count INTEGER NOT NULL,
    start_message_id INTEGER NOT NULL,
    end_message_id INTEGER NOT NULL,
    importance_score REAL NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS semantic_pins (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    content TEXT NOT NULL,
    source_message_id INTEGER,
    importance_score REAL NOT NULL DEFAULT 0.8,
    pin_type TEXT NOT NULL DEFAULT 'manual'
        CHECK (pin_type IN ('manual', 'auto', 'code', 'concept', 'system')),
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages (session_id, created_at);
CREATE INDEX IF NOT EXISTS idx_summaries_session ON conversation_summaries (session_id, created_at);
CREATE INDEX IF NOT EXISTS idx_pins_session ON semantic_pins (session_id, importance_score);
"""


def _ts(value: datetime) -> str:
    # Fixed-width so text comparison matches time order
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        text=row["text"],
        model_id=row["model_id"] or "",
        created_at=_parse_ts(row["created_at"]),
        importance_score=row["importance_score"],
        token_usage=row["token_usage"],
    )


def _row_to_summary(row: sqlite3.Row) -> ConversationSummary:
    return ConversationSummary(
        id=row["id"],
        session_id=row["session_id"],
        summary_text=row["summary_text"],
        message_count=row["message_count"],
        start_message_id=row["start_message_id"],
        end_message_id=row["end_message_id"],
        importance_score=row["importance_score"],
        created_at=_parse_ts(row["created_at"]),
    )


def _row_to_pin(row: sqlite3.Row) -> SemanticPin:
    return SemanticPin(
        id=row["id"],
        session_id=row["session_id"],
        content=row["content"],
        importance_score=row["importance_score"],
        pin_type=row["pin_type"],
        source_message_id=row["source_message_id"],
        created_at=_parse_ts(row["created_at"]),
    )


class SQLiteMemoryStore:
    """
    Messages, summaries and pins in one SQLite file.

    Opens a connection per operation, so one instance can be shared by
    threads and by the event loop.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    # ==================== Database Connection ====================

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and always closes."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=10.0)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)
        logger.debug(f"Memory store ready at {self.db_path}")

    # ==================== Sessions ====================

    def create_session(self, session_id: str, model_id: str | None = None) -> None:
        """Create a session or update its model."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO sessions (id, model_id, created_at) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET model_id = excluded.model_id
                """,
                (session_id, model_id, _ts(utc_now())),
            )

    def get_session_model(self, session_id: str) -> str | None:
        """
        Get the model associated with a session.

        Falls back to the model of the latest message that names one.
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT model_id FROM sessions WHERE id = ?", (session_id,)
            ).fetchone()
            if row and row["model_id"]:
                return row["model_id"]
            row = conn.execute(
                """
                SELECT model_id FROM messages
                WHERE session_id = ? AND model_id != ''
                ORDER BY created_at DESC, id DESC LIMIT 1
                """,
                (session_id,),
            ).fetchone()
            return row["model_id"] if row else None

    # ==================== Messages ====================

    def insert_message(self, message: Message) -> Message:
        """Persist a message; the returned copy carries the assigned id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO messages
                (session_id, role, text, model_id, token_usage, importance_score, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message.session_id,
                    message.role,
                    message.text,
                    message.model_id,
                    message.token_usage,
                    message.importance_score,
                    _ts(message.created_at),
                ),
            )
            message_id = cursor.lastrowid
        return Message(
            id=message_id,
            session_id=message.session_id,
            role=message.role,
            text=message.text,
            model_id=message.model_id,
            created_at=message.created_at,
            importance_score=message.importance_score,
            token_usage=message.token_usage,
        )

    def count_messages(self, session_id: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE session_id = ?", (session_id,)
            )
            return cursor.fetchone()[0]

    def fetch_messages(
        self,
        session_id: str,
        order: SortOrder = "desc",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Message]:
        """Fetch messages by creation time, newest first unless ``order="asc"``."""
        direction = "ASC" if order == "asc" else "DESC"
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM messages WHERE session_id = ?
                ORDER BY created_at {direction}, id {direction}
                LIMIT ? OFFSET ?
                """,
                (session_id, -1 if limit is None else limit, offset),
            ).fetchall()
        return [_row_to_message(row) for row in rows]

    def fetch_messages_in_range(self, session_id: str, start_id: int, end_id: int) -> list[Message]:
        """Fetch messages with ids in [start_id, end_id], oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ? AND id BETWEEN ? AND ?
                ORDER BY created_at ASC, id ASC
                """,
                (session_id, start_id, end_id),
            ).fetchall()
        return [_row_to_message(row) for row in rows]

    def fetch_messages_since(
        self, session_id: str, since: datetime, limit: int | None = None
    ) -> list[Message]:
        """Fetch messages created strictly after ``since``, oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE session_id = ? AND created_at > ?
                ORDER BY created_at ASC, id ASC
                LIMIT ?
                """,
                (session_id, _ts(since), -1 if limit is None else limit),
            ).fetchall()
        return [_row_to_message(row) for row in rows]

    def count_messages_since(self, session_id: str, since: datetime) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM messages WHERE session_id = ? AND created_at > ?",
                (session_id, _ts(since)),
            )
            return cursor.fetchone()[0]

    def update_message_importance(self, message_id: int, score: float) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE messages SET importance_score = ? WHERE id = ?",
                (score, message_id),
            )

    # ==================== Summaries ====================

    def insert_summary(self, summary: ConversationSummary) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO conversation_summaries
                (id, session_id, summary_text, message_count, start_message_id,
                 end_message_id, importance_score, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    summary.id,
                    summary.session_id,
                    summary.summary_text,
                    summary.message_count,
                    summary.start_message_id,
                    summary.end_message_id,
                    summary.importance_score,
                    _ts(summary.created_at),
                ),
            )

    def fetch_summaries(self, session_id: str, limit: int | None = None) -> list[ConversationSummary]:
        """Fetch summaries, most recent first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM conversation_summaries WHERE session_id = ?
                ORDER BY created_at DESC, start_message_id DESC
                LIMIT ?
                """,
                (session_id, -1 if limit is None else limit),
            ).fetchall()
        return [_row_to_summary(row) for row in rows]

    def fetch_last_summary(self, session_id: str) -> ConversationSummary | None:
        summaries = self.fetch_summaries(session_id, limit=1)
        return summaries[0] if summaries else None

    # ==================== Pins ====================

    def insert_pin(self, pin: SemanticPin) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO semantic_pins
                (id, session_id, content, source_message_id, importance_score, pin_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pin.id,
                    pin.session_id,
                    pin.content,
                    pin.source_message_id,
                    pin.importance_score,
                    pin.pin_type,
                    _ts(pin.created_at),
                ),
            )

    def fetch_pins(self, session_id: str, limit: int | None = None) -> list[SemanticPin]:
        """Fetch pins by importance, ties broken by recency."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM semantic_pins WHERE session_id = ?
                ORDER BY importance_score DESC, created_at DESC
                LIMIT ?
                """,
                (session_id, -1 if limit is None else limit),
            ).fetchall()
        return [_row_to_pin(row) for row in rows]

    # ==================== Stats ====================

    def stats(self, session_id: str) -> MemoryStats:
        """Aggregate counts and timestamps for a session."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total, MIN(created_at) AS oldest,
                       MAX(created_at) AS newest, AVG(importance_score) AS avg_score
                FROM messages WHERE session_id = ?
                """,
                (session_id,),
            ).fetchone()
            summaries = conn.execute(
                "SELECT COUNT(*) FROM conversation_summaries WHERE session_id = ?",
                (session_id,),
            ).fetchone()[0]
            pins = conn.execute(
                "SELECT COUNT(*) FROM semantic_pins WHERE session_id = ?",
                (session_id,),
            ).fetchone()[0]

        return MemoryStats(
            total_messages=row["total"],
            total_summaries=summaries,
            total_pins=pins,
            oldest_message=row["oldest"] or "",
            newest_message=row["newest"] or "",
            average_importance_score=round(row["avg_score"] or 0.0, 3),
        )
