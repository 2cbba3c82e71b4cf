"""Hybrid conversation memory: recent messages, summaries and pins."""

from kalito.memory.cache import SessionCache
from kalito.memory.estimator import estimate_context_tokens, estimate_text_tokens
from kalito.memory.manager import MemoryManager
from kalito.memory.scoring import score_importance, score_messages
from kalito.memory.summarizer import SummarizationEngine
from kalito.memory.trigger import AutoSummarizer
from kalito.memory.truncation import truncate_context
from kalito.memory.types import (
    ConversationSummary,
    CreatePinRequest,
    MemoryContext,
    MemoryStats,
    Message,
    SemanticPin,
    SummaryRequest,
)
from kalito.memory.validator import SummaryRule, SummaryValidator, fallback_summary, offline_summary
from kalito.memory.worker import SummaryWorker

__all__ = [
    # Estimator
    "estimate_text_tokens",
    "estimate_context_tokens",
    # Scoring
    "score_importance",
    "score_messages",
    # Cache
    "SessionCache",
    # Validator
    "SummaryRule",
    "SummaryValidator",
    "fallback_summary",
    "offline_summary",
    # Summaries
    "SummarizationEngine",
    "AutoSummarizer",
    "SummaryWorker",
    # Context
    "truncate_context",
    "MemoryManager",
    # Types
    "ConversationSummary",
    "CreatePinRequest",
    "MemoryContext",
    "MemoryStats",
    "Message",
    "SemanticPin",
    "SummaryRequest",
]
