"""Auto-summarization trigger."""

import asyncio

from loguru import logger

from kalito.memory.summarizer import SummarizationEngine
from kalito.memory.types import ConversationSummary, Message, SUMMARY_THRESHOLD, SummaryRequest
from kalito.store.base import MemoryStore, StoreError


class AutoSummarizer:
    """
    Decides when enough history has accumulated to compress it.

    Without an existing summary, the first ``threshold`` messages are
    summarized once the session reaches that many. Afterwards, messages
    created after the latest summary are summarized once there are at
    least ``threshold`` of them.
    """

    def __init__(
        self,
        store: MemoryStore,
        engine: SummarizationEngine,
        threshold: int = SUMMARY_THRESHOLD,
    ):
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.store = store
        self.engine = engine
        self.threshold = threshold

    def needs_summarization(self, session_id: str) -> bool:
        """Return True when a session has enough unsummarized messages."""
        try:
            last = self.store.fetch_last_summary(session_id)
            if last is None:
                return self.store.count_messages(session_id) >= self.threshold
            return self.store.count_messages_since(session_id, last.created_at) >= self.threshold
        except StoreError as e:
            logger.warning(f"Could not check summarization need for {session_id}: {e}")
            return False

    def pending_messages(self, session_id: str) -> list[Message]:
        """Messages the next auto-summary would cover, oldest first."""
        last = self.store.fetch_last_summary(session_id)
        if last is None:
            return self.store.fetch_messages(session_id, order="asc", limit=self.threshold)
        return self.store.fetch_messages_since(session_id, last.created_at)

    async def auto_summarize(self, session_id: str) -> ConversationSummary | None:
        """
        Summarize pending history if the threshold is met.

        Returns:
            The new summary, or None when nothing is due or the attempt failed.
        """
        try:
            # Store reads are blocking; keep them off the event loop
            if not await asyncio.to_thread(self.needs_summarization, session_id):
                return None

            messages = await asyncio.to_thread(self.pending_messages, session_id)
            if not messages:
                return None

            request = SummaryRequest(
                session_id=session_id,
                start_message_id=messages[0].id,
                end_message_id=messages[-1].id,
                message_count=len(messages),
            )
            logger.info(f"Auto-summarizing {len(messages)} messages for {session_id}")
            return await self.engine.create_summary(request)
        except Exception as e:
            logger.error(f"Auto-summarization failed for {session_id}: {e}")
            return None
