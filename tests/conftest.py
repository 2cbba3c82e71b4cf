"""Shared fixtures: a scripted completion provider and a temp SQLite store."""

from datetime import timedelta
from pathlib import Path

import pytest

from kalito.config.schema import Config
from kalito.memory.cache import SessionCache
from kalito.memory.manager import MemoryManager
from kalito.memory.types import Message, utc_now
from kalito.providers.base import CompletionRequest, CompletionResponse, LLMProvider
from kalito.store.sqlite import SQLiteMemoryStore


class FakeProvider(LLMProvider):
    """Returns scripted text (or raises) and records every request."""

    def __init__(self, text: str = "User asked about things.", error: BaseException | None = None):
        super().__init__()
        self.text = text
        self.error = error
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return CompletionResponse(text=self.text, token_usage=12)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_message(text: str, role: str = "user", id: int = 1, session_id: str = "s1", **kwargs) -> Message:
    return Message(id=id, session_id=session_id, role=role, text=text, **kwargs)


def seed_messages(
    store: SQLiteMemoryStore,
    session_id: str,
    texts: list[str],
    model_id: str = "",
    start=None,
) -> list[Message]:
    """Insert alternating user/assistant messages one second apart, oldest first."""
    start = start or utc_now() - timedelta(hours=1)
    stored = []
    for i, text in enumerate(texts):
        role = "user" if i % 2 == 0 else "assistant"
        message = Message(
            id=0,
            session_id=session_id,
            role=role,
            text=text,
            model_id=model_id,
            created_at=start + timedelta(seconds=i),
        )
        stored.append(store.insert_message(message))
    return stored


@pytest.fixture
def store(tmp_path: Path) -> SQLiteMemoryStore:
    return SQLiteMemoryStore(tmp_path / "memory.db")


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(store: SQLiteMemoryStore, provider: FakeProvider, clock: FakeClock) -> MemoryManager:
    return MemoryManager(
        store=store,
        provider=provider,
        cache=SessionCache(ttl_seconds=5.0, clock=clock),
        config=Config(),
    )
