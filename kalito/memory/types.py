"""Types for the conversation memory system."""

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]
PinType = Literal["manual", "auto", "code", "concept", "system"]
ModelKind = Literal["local", "remote"]

VALID_ROLES: tuple[str, ...] = ("system", "user", "assistant")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def make_record_id(prefix: str) -> str:
    """Build an id like ``summary_1724500000000_k3j9x0a1b``."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


@dataclass
class Message:
    """A single conversation turn as stored."""

    id: int
    session_id: str
    role: Role
    text: str
    model_id: str = ""
    created_at: datetime = field(default_factory=utc_now)
    importance_score: float = 0.5
    token_usage: int | None = None


@dataclass
class ConversationSummary:
    """Compressed text for a contiguous, closed range of messages."""

    id: str
    session_id: str
    summary_text: str
    message_count: int
    start_message_id: int
    end_message_id: int
    importance_score: float
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class SemanticPin:
    """A durable fact attached to a session, independent of recency."""

    id: str
    session_id: str
    content: str
    importance_score: float = 0.8
    pin_type: PinType = "manual"
    source_message_id: int | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class MemoryContext:
    """Assembled memory for one model call. Never persisted."""

    recent_messages: list[Message] = field(default_factory=list)
    semantic_pins: list[SemanticPin] = field(default_factory=list)
    summaries: list[ConversationSummary] = field(default_factory=list)
    total_tokens: int = 0
    is_degraded: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.recent_messages or self.semantic_pins or self.summaries)

    def render(self) -> str:
        """
        Format the context as a prompt block.

        Pinned facts come first, then earlier summaries (oldest first so the
        narrative reads forward), then the recent messages.
        """
        parts: list[str] = []

        if self.semantic_pins:
            lines = [f"- {pin.content}" for pin in self.semantic_pins]
            parts.append("## Pinned facts\n" + "\n".join(lines))

        if self.summaries:
            lines = [f"- {s.summary_text}" for s in reversed(self.summaries)]
            parts.append("## Earlier in this conversation\n" + "\n".join(lines))

        if self.recent_messages:
            lines = [f"[{m.role}]: {m.text}" for m in self.recent_messages]
            parts.append("## Recent messages\n" + "\n".join(lines))

        return "\n\n".join(parts)


@dataclass
class SummaryRequest:
    """Range of messages to compress into one summary."""

    session_id: str
    start_message_id: int
    end_message_id: int
    message_count: int


@dataclass
class MemoryStats:
    """Per-session memory statistics."""

    total_messages: int = 0
    total_summaries: int = 0
    total_pins: int = 0
    oldest_message: str = ""
    newest_message: str = ""
    average_importance_score: float = 0.0


class CreatePinRequest(BaseModel):
    """Validated request to pin a fact to a session."""

    session_id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    source_message_id: int | None = None
    importance_score: float | None = Field(default=None, ge=0.0, le=1.0)
    pin_type: PinType = "manual"


# Context assembly
DEFAULT_RECENT_LIMIT = 8
DEFAULT_PIN_LIMIT = 5
DEFAULT_SUMMARY_LIMIT = 3
DEFAULT_FALLBACK_LIMIT = 10
DEFAULT_TOKEN_BUDGET = 3000
MIN_RECENT_MESSAGES = 3
TOKENS_PER_CHAR = 0.75

# Summaries
SUMMARY_THRESHOLD = 15
SUMMARY_IMPORTANCE = 0.7
DEFAULT_PIN_IMPORTANCE = 0.8
EMPTY_RANGE_SUMMARY = "No messages to summarize"

# Cache
CACHE_TTL_SECONDS = 5.0
