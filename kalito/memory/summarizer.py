"""Summarization engine: model selection, prompting, validation and fallback."""

import asyncio
from collections.abc import Sequence

from loguru import logger

from kalito.config.schema import SummarizationConfig
from kalito.memory.cache import SessionCache
from kalito.memory.types import (
    ConversationSummary,
    EMPTY_RANGE_SUMMARY,
    Message,
    ModelKind,
    SummaryRequest,
    make_record_id,
)
from kalito.memory.validator import SummaryValidator, fallback_summary, offline_summary
from kalito.providers.base import CompletionRequest, LLMProvider, ProviderNetworkError, is_network_error
from kalito.providers.registry import ModelRegistry
from kalito.store.base import MemoryStore, StoreError


# Local models drift into creative writing when asked to "summarize" a
# creative conversation, so they get a narrow, example-anchored instruction.
LOCAL_SYSTEM_PROMPT = """TASK: Write a brief summary of the conversation below. Describe ONLY what was discussed. Do not produce new content.

FORMAT: 1-2 plain sentences naming the key topics and outcomes.
EXAMPLE: "User asked how to schedule an evening medication and the assistant suggested setting a daily reminder."

DO NOT: write poems, stories, titles, lists, code or dialogue. DO NOT continue the conversation."""

REMOTE_SYSTEM_PROMPT = """You are a conversation summarizer. Create a concise summary that preserves:
1. The main topics discussed
2. Decisions made and facts the user shared
3. Open questions or follow-ups

Write in plain prose. Keep under 300 words."""

LOCAL_USER_PROMPT = """Conversation to summarize:
{conversation}

Provide only the summary:"""

REMOTE_USER_PROMPT = """Please summarize this conversation:

{conversation}"""


def format_conversation(messages: Sequence[Message]) -> str:
    """Render messages as ``role: text`` lines."""
    return "\n".join(f"{m.role}: {m.text}" for m in messages)


class SummarizationEngine:
    """
    Compresses a closed range of messages into one stored summary.

    ``create_summary`` never raises: network failures produce an offline
    summary, other failures and rejected local output produce the
    deterministic fallback.
    """

    def __init__(
        self,
        store: MemoryStore,
        provider: LLMProvider,
        registry: ModelRegistry | None = None,
        cache: SessionCache | None = None,
        validator: SummaryValidator | None = None,
        config: SummarizationConfig | None = None,
    ):
        self.store = store
        self.provider = provider
        self.registry = registry or ModelRegistry()
        self.cache = cache or SessionCache()
        self.validator = validator or SummaryValidator()
        self.config = config or SummarizationConfig()

    def _session_model(self, session_id: str) -> str | None:
        hit, model_id = self.cache.get_model(session_id)
        if hit:
            return model_id
        generation = self.cache.generation(session_id)
        model_id = self.store.get_session_model(session_id)
        self.cache.put_model(session_id, model_id, generation=generation)
        return model_id

    def select_model(self, session_id: str) -> tuple[str, ModelKind]:
        """
        Pick the summarization model for a session.

        A session running on a local model keeps using it, so summaries
        stay offline; anything else uses the default remote model.
        """
        try:
            session_model = self._session_model(session_id)
        except StoreError as e:
            logger.warning(f"Session model lookup failed for {session_id}: {e}")
            session_model = None

        if session_model and self.registry.is_local(session_model):
            return session_model, "local"

        model_id = self.config.default_remote_model
        return model_id, self.registry.resolve_model_kind(model_id)

    def build_prompts(self, messages: Sequence[Message], kind: ModelKind) -> tuple[str, str]:
        """Return (system_prompt, user_input) for the model class."""
        conversation = format_conversation(messages)
        if kind == "local":
            return LOCAL_SYSTEM_PROMPT, LOCAL_USER_PROMPT.format(conversation=conversation)
        return REMOTE_SYSTEM_PROMPT, REMOTE_USER_PROMPT.format(conversation=conversation)

    def build_request(self, messages: Sequence[Message], model_id: str, kind: ModelKind) -> CompletionRequest:
        system_prompt, user_input = self.build_prompts(messages, kind)
        max_tokens = self.config.local_max_tokens if kind == "local" else self.config.remote_max_tokens
        return CompletionRequest(
            model_id=model_id,
            system_prompt=system_prompt,
            user_input=user_input,
            temperature=self.config.temperature,
            max_output_tokens=max_tokens,
        )

    async def generate_text(
        self, session_id: str, messages: Sequence[Message]
    ) -> str:
        """
        Produce summary text for messages, falling back instead of raising.

        Args:
            session_id: Session the messages belong to.
            messages: Messages to summarize, oldest first.

        Returns:
            Model output, offline summary, or deterministic fallback.
        """
        if not messages:
            return EMPTY_RANGE_SUMMARY

        model_id, kind = self.select_model(session_id)
        request = self.build_request(messages, model_id, kind)

        try:
            response = await asyncio.wait_for(
                self.provider.complete(request),
                timeout=self.config.timeout_seconds,
            )
        except (ProviderNetworkError, asyncio.TimeoutError, asyncio.CancelledError) as e:
            logger.warning(f"Summarization offline for {session_id} ({type(e).__name__}), using offline summary")
            return offline_summary(messages)
        except Exception as e:
            if is_network_error(e):
                logger.warning(f"Summarization offline for {session_id}: {e}")
                return offline_summary(messages)
            logger.error(f"Summarization failed for {session_id}: {e}")
            return fallback_summary(messages)

        text = (response.text or "").strip()
        if not text:
            logger.warning(f"Empty summary from {model_id}, using fallback")
            return fallback_summary(messages)

        if kind == "local":
            result = self.validator.check(text, messages)
            if not result.valid:
                logger.warning(
                    f"Local model {model_id} produced invalid summary "
                    f"({', '.join(result.failed_rules)}), using fallback"
                )
                return fallback_summary(messages)

        return text

    async def create_summary(self, request: SummaryRequest) -> ConversationSummary:
        """
        Summarize a message range, persist it and return it.

        Args:
            request: Session and inclusive message id range.

        Returns:
            The stored ConversationSummary (always returned, even when the
            model or the store fails).
        """
        try:
            messages = self.store.fetch_messages_in_range(
                request.session_id, request.start_message_id, request.end_message_id
            )
        except StoreError as e:
            logger.error(f"Could not read messages for {request.session_id}: {e}")
            messages = []

        text = await self.generate_text(request.session_id, messages)

        summary = ConversationSummary(
            id=make_record_id("summary"),
            session_id=request.session_id,
            summary_text=text,
            message_count=len(messages) or request.message_count,
            start_message_id=request.start_message_id,
            end_message_id=request.end_message_id,
            importance_score=self.config.importance_score,
        )

        try:
            self.store.insert_summary(summary)
        except StoreError as e:
            logger.error(f"Could not store summary for {request.session_id}: {e}")
        self.cache.invalidate(request.session_id)

        logger.info(
            f"Created summary {summary.id} for {request.session_id} "
            f"(messages {request.start_message_id}-{request.end_message_id})"
        )
        return summary
