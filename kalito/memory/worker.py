"""Background auto-summarization off the request path."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable

from loguru import logger

from kalito.memory.trigger import AutoSummarizer
from kalito.memory.types import ConversationSummary

SummaryCallback = Callable[[ConversationSummary], Awaitable[None] | None]


class SummaryWorker:
    """
    Runs auto-summarization as background tasks, at most one per session.

    Callers schedule a session after replying to a turn; the job checks
    the trigger, summarizes if due and reports its own failures.
    """

    def __init__(
        self,
        trigger: AutoSummarizer,
        on_summary: SummaryCallback | None = None,
    ):
        """
        Args:
            trigger: Auto-summarization trigger to run.
            on_summary: Optional callback (sync or async) for each new summary.
        """
        self.trigger = trigger
        self.on_summary = on_summary
        self._active_jobs: dict[str, asyncio.Task] = {}
        self._job_locks: dict[str, asyncio.Lock] = {}
        # session_id -> jobs holding or waiting on the lock
        self._lock_users: dict[str, int] = {}

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        """Get or create lock for a session."""
        if session_id not in self._job_locks:
            self._job_locks[session_id] = asyncio.Lock()
        return self._job_locks[session_id]

    @property
    def active_sessions(self) -> list[str]:
        """Sessions with a job in flight."""
        return [sid for sid, task in self._active_jobs.items() if not task.done()]

    def schedule(self, session_id: str) -> asyncio.Task | None:
        """
        Start a background job for a session.

        Must be called from a running event loop.

        Returns:
            The new task, or None if a job for the session is already running.
        """
        existing = self._active_jobs.get(session_id)
        if existing and not existing.done():
            logger.debug(f"Summarization already running for {session_id}, skipping")
            return None

        task = asyncio.create_task(self.run_once(session_id), name=f"summarize:{session_id}")
        self._active_jobs[session_id] = task
        task.add_done_callback(lambda t: self._on_done(session_id, t))
        return task

    def _on_done(self, session_id: str, task: asyncio.Task) -> None:
        if self._active_jobs.get(session_id) is task:
            del self._active_jobs[session_id]
        if task.cancelled():
            logger.debug(f"Summarization job for {session_id} cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Summarization job for {session_id} failed: {error}")

    async def run_once(self, session_id: str) -> ConversationSummary | None:
        """
        Run the trigger for one session and notify the callback.

        Returns:
            The new summary, or None if none was due.
        """
        lock = self._get_lock(session_id)
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                summary = await self.trigger.auto_summarize(session_id)
        finally:
            self._release_lock(session_id)

        if summary is not None and self.on_summary is not None:
            try:
                result = self.on_summary(summary)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Summary callback failed for {session_id}: {e}")

        return summary

    def _release_lock(self, session_id: str) -> None:
        """Forget a session's lock once no job holds or waits on it."""
        remaining = self._lock_users.get(session_id, 1) - 1
        if remaining > 0:
            self._lock_users[session_id] = remaining
            return
        self._lock_users.pop(session_id, None)
        self._job_locks.pop(session_id, None)

    async def drain(self) -> None:
        """Wait for all in-flight jobs to finish."""
        tasks = list(self._active_jobs.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
