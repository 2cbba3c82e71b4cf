"""Persistence interface consumed by the memory system."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal, Protocol

if TYPE_CHECKING:
    from kalito.memory.types import ConversationSummary, MemoryStats, Message, SemanticPin

SortOrder = Literal["asc", "desc"]


class StoreError(Exception):
    """A persistence operation failed."""


class MemoryStore(Protocol):
    """
    Durable storage for messages, summaries and pins.

    Message ordering is by creation time, ties broken by id.
    """

    def count_messages(self, session_id: str) -> int: ...

    def fetch_messages(
        self,
        session_id: str,
        order: SortOrder = "desc",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Message]: ...

    def fetch_messages_in_range(self, session_id: str, start_id: int, end_id: int) -> list[Message]: ...

    def fetch_messages_since(
        self, session_id: str, since: datetime, limit: int | None = None
    ) -> list[Message]: ...

    def count_messages_since(self, session_id: str, since: datetime) -> int: ...

    def fetch_pins(self, session_id: str, limit: int | None = None) -> list[SemanticPin]: ...

    def fetch_summaries(self, session_id: str, limit: int | None = None) -> list[ConversationSummary]: ...

    def fetch_last_summary(self, session_id: str) -> ConversationSummary | None: ...

    def get_session_model(self, session_id: str) -> str | None: ...

    def insert_message(self, message: Message) -> Message: ...

    def insert_summary(self, summary: ConversationSummary) -> None: ...

    def insert_pin(self, pin: SemanticPin) -> None: ...

    def update_message_importance(self, message_id: int, score: float) -> None: ...

    def stats(self, session_id: str) -> MemoryStats: ...
