"""Memory manager: the entry point used by the chat-turn handler."""

import asyncio
from collections.abc import Mapping
from typing import Any

from loguru import logger

from kalito.config.schema import Config
from kalito.memory.cache import SessionCache
from kalito.memory.estimator import estimate_context_tokens
from kalito.memory.scoring import score_importance, score_messages
from kalito.memory.summarizer import SummarizationEngine
from kalito.memory.trigger import AutoSummarizer
from kalito.memory.truncation import truncate_context
from kalito.memory.types import (
    ConversationSummary,
    CreatePinRequest,
    DEFAULT_PIN_IMPORTANCE,
    MemoryContext,
    MemoryStats,
    Message,
    SemanticPin,
    SummaryRequest,
    VALID_ROLES,
    make_record_id,
)
from kalito.memory.validator import SummaryValidator
from kalito.memory.worker import SummaryCallback, SummaryWorker
from kalito.providers.base import LLMProvider
from kalito.providers.registry import ModelRegistry
from kalito.store.base import MemoryStore


class MemoryManager:
    """
    Hybrid conversation memory for one store.

    Handles:
    - Context assembly under a token budget (never raises)
    - Importance scoring when messages are recorded
    - Pins, summaries and the auto-summarization trigger
    - Explicit cache invalidation after writes
    """

    def __init__(
        self,
        store: MemoryStore,
        provider: LLMProvider,
        registry: ModelRegistry | None = None,
        cache: SessionCache | None = None,
        config: Config | None = None,
        on_summary: SummaryCallback | None = None,
    ):
        """
        Initialize the memory manager.

        Args:
            store: Persistence for messages, summaries and pins.
            provider: Completion provider used for summaries.
            registry: Model registry; built from config when omitted.
            cache: Session cache; built from config when omitted.
            config: Root configuration.
            on_summary: Callback for summaries made by background jobs.
        """
        self.config = config or Config()
        self.store = store
        self.registry = registry or ModelRegistry(self.config.models.entries)
        self.cache = cache or SessionCache(ttl_seconds=self.config.cache.ttl_seconds)

        validator_config = self.config.validator
        self.validator = SummaryValidator(
            max_chars=validator_config.max_chars,
            max_ratio=validator_config.max_ratio,
            min_overlap=validator_config.min_overlap,
        )
        self.engine = SummarizationEngine(
            store=store,
            provider=provider,
            registry=self.registry,
            cache=self.cache,
            validator=self.validator,
            config=self.config.summarization,
        )
        self.trigger = AutoSummarizer(store, self.engine, threshold=self.config.summarization.threshold)
        self.worker = SummaryWorker(self.trigger, on_summary=on_summary)

    @classmethod
    def from_config(cls, config: Config) -> "MemoryManager":
        """Build a manager backed by SQLite and LiteLLM."""
        from kalito.providers.litellm_provider import LiteLLMProvider
        from kalito.store.sqlite import SQLiteMemoryStore

        registry = ModelRegistry(config.models.entries)
        provider = LiteLLMProvider(
            registry=registry,
            api_keys=config.provider_api_keys(),
            api_bases=config.provider_api_bases(),
            request_timeout_seconds=config.summarization.timeout_seconds,
        )
        return cls(
            store=SQLiteMemoryStore(config.database_path),
            provider=provider,
            registry=registry,
            config=config,
        )

    # -- Context assembly ------------------------------------------------

    def _recent_messages(self, session_id: str) -> list[Message]:
        limit = self.config.memory.recent_limit
        cached = self.cache.get_recent(session_id, limit)
        if cached is not None:
            return cached

        generation = self.cache.generation(session_id)
        # Skip the newest message: it is the input of the current turn
        newest_first = self.store.fetch_messages(session_id, order="desc", limit=limit, offset=1)
        messages = list(reversed(newest_first))
        self.cache.put_recent(session_id, limit, messages, generation=generation)
        return messages

    def _degraded_context(self, session_id: str) -> MemoryContext:
        try:
            newest_first = self.store.fetch_messages(
                session_id, order="desc", limit=self.config.memory.fallback_limit
            )
        except Exception as e:
            logger.error(f"Degraded context fetch failed for {session_id}: {e}")
            return MemoryContext(is_degraded=True)
        return MemoryContext(recent_messages=list(reversed(newest_first)), is_degraded=True)

    def build_context(self, session_id: str, token_budget: int | None = None) -> MemoryContext:
        """
        Assemble memory for the next model call.

        Recent messages (excluding the newest), top pins and the latest
        summaries are fetched and truncated to the budget when needed. On
        any failure a degraded context of recent messages is returned.

        Args:
            session_id: Session to read.
            token_budget: Maximum estimated tokens; defaults to config.

        Returns:
            MemoryContext for the session.
        """
        memory = self.config.memory
        budget = memory.token_budget if token_budget is None else token_budget

        try:
            messages = self._recent_messages(session_id)
            pins = self.store.fetch_pins(session_id, limit=memory.pin_limit)
            summaries = self.store.fetch_summaries(session_id, limit=memory.summary_limit)

            total = estimate_context_tokens(messages, pins, summaries, memory.tokens_per_char)
            if total <= budget:
                return MemoryContext(
                    recent_messages=messages,
                    semantic_pins=pins,
                    summaries=summaries,
                    total_tokens=total,
                )

            context = truncate_context(
                messages,
                pins,
                summaries,
                budget,
                min_recent=memory.min_recent_messages,
                tokens_per_char=memory.tokens_per_char,
            )
            logger.debug(
                f"Truncated context for {session_id}: {total} -> {context.total_tokens} tokens"
            )
            return context
        except Exception as e:
            logger.warning(f"Context assembly failed for {session_id}, degrading: {e}")
            return self._degraded_context(session_id)

    # -- Scoring ---------------------------------------------------------

    def score_importance(self, message: Message) -> float:
        """Score a message for recall relevance."""
        return score_importance(message)

    def rescore_session(self, session_id: str, limit: int | None = None) -> int:
        """
        Re-score and persist importance for a session's messages.

        Args:
            session_id: Session to re-score.
            limit: Maximum messages, oldest first; defaults to config.

        Returns:
            Number of messages updated.
        """
        limit = self.config.memory.rescore_limit if limit is None else limit
        messages = self.store.fetch_messages(session_id, order="asc", limit=limit)
        scores = score_messages(messages)
        for message_id, score in scores:
            self.store.update_message_importance(message_id, score)
        self.invalidate_session_cache(session_id)
        logger.info(f"Re-scored {len(scores)} messages for {session_id}")
        return len(scores)

    # -- Recording -------------------------------------------------------

    def record_message(
        self,
        session_id: str,
        role: str,
        text: str,
        model_id: str = "",
        token_usage: int | None = None,
    ) -> Message:
        """
        Score and persist a new message, then invalidate the session cache.

        Raises:
            ValueError: Unknown role or empty session id.
        """
        if role not in VALID_ROLES:
            raise ValueError(f"Invalid role: {role!r}")
        if not session_id:
            raise ValueError("session_id is required")

        message = Message(
            id=0,
            session_id=session_id,
            role=role,
            text=text,
            model_id=model_id,
            token_usage=token_usage,
        )
        message.importance_score = score_importance(message)
        stored = self.store.insert_message(message)
        self.invalidate_session_cache(session_id)
        return stored

    def create_pin(self, request: CreatePinRequest | Mapping[str, Any]) -> SemanticPin:
        """
        Pin a fact to a session.

        Raises:
            pydantic.ValidationError: The request is malformed.
        """
        if not isinstance(request, CreatePinRequest):
            request = CreatePinRequest.model_validate(dict(request))

        pin = SemanticPin(
            id=make_record_id("pin"),
            session_id=request.session_id,
            content=request.content,
            importance_score=(
                DEFAULT_PIN_IMPORTANCE if request.importance_score is None else request.importance_score
            ),
            pin_type=request.pin_type,
            source_message_id=request.source_message_id,
        )
        self.store.insert_pin(pin)
        self.invalidate_session_cache(request.session_id)
        logger.info(f"Pinned {pin.id} to {pin.session_id}")
        return pin

    def invalidate_session_cache(self, session_id: str) -> None:
        """Drop cached reads for a session; call after every write."""
        self.cache.invalidate(session_id)

    # -- Summaries -------------------------------------------------------

    def needs_summarization(self, session_id: str) -> bool:
        return self.trigger.needs_summarization(session_id)

    async def auto_summarize(self, session_id: str) -> ConversationSummary | None:
        return await self.trigger.auto_summarize(session_id)

    async def create_summary(self, request: SummaryRequest) -> ConversationSummary:
        return await self.engine.create_summary(request)

    def schedule_summarization(self, session_id: str) -> asyncio.Task | None:
        """Queue background auto-summarization for a session."""
        if not self.config.summarization.background:
            return None
        return self.worker.schedule(session_id)

    # -- Stats -----------------------------------------------------------

    def count_messages(self, session_id: str) -> int:
        """Message count for a session, served from cache when fresh."""
        cached = self.cache.get_count(session_id)
        if cached is not None:
            return cached
        generation = self.cache.generation(session_id)
        count = self.store.count_messages(session_id)
        self.cache.put_count(session_id, count, generation=generation)
        return count

    def get_stats(self, session_id: str) -> MemoryStats:
        return self.store.stats(session_id)
