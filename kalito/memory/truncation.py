"""Budget-aware truncation of assembled memory context."""

from collections.abc import Sequence

from kalito.memory.estimator import estimate_context_tokens, estimate_text_tokens
from kalito.memory.types import (
    ConversationSummary,
    MemoryContext,
    Message,
    MIN_RECENT_MESSAGES,
    SemanticPin,
    TOKENS_PER_CHAR,
)


def order_pins(pins: Sequence[SemanticPin]) -> list[SemanticPin]:
    """
    Order pins by importance, highest first.

    The sort is stable, so pins with equal scores keep their incoming
    (recency) order.
    """
    return sorted(pins, key=lambda pin: pin.importance_score, reverse=True)


def truncate_context(
    messages: Sequence[Message],
    pins: Sequence[SemanticPin],
    summaries: Sequence[ConversationSummary],
    token_budget: int,
    min_recent: int = MIN_RECENT_MESSAGES,
    tokens_per_char: float = TOKENS_PER_CHAR,
) -> MemoryContext:
    """
    Fit context under a token budget with a fixed priority order.

    The most recent ``min_recent`` messages are always kept, even when they
    alone exceed the budget. Pins (by importance) and then summaries (in
    the given most-recent-first order) are each admitted in one greedy
    pass, only when they fit in what remains. An item that does not fit is
    skipped and does not stop smaller items after it.

    Args:
        messages: Recent messages, oldest first.
        pins: Candidate pins.
        summaries: Candidate summaries, most recent first.
        token_budget: Maximum estimated tokens.
        min_recent: Number of most recent messages always kept.
        tokens_per_char: Ratio for the token estimate.

    Returns:
        Truncated MemoryContext.
    """
    kept_messages = list(messages[-min_recent:]) if min_recent > 0 else []
    used = estimate_context_tokens(kept_messages, tokens_per_char=tokens_per_char)

    kept_pins: list[SemanticPin] = []
    for pin in order_pins(pins):
        cost = estimate_text_tokens(pin.content, tokens_per_char)
        if used + cost <= token_budget:
            kept_pins.append(pin)
            used += cost

    kept_summaries: list[ConversationSummary] = []
    for summary in summaries:
        cost = estimate_text_tokens(summary.summary_text, tokens_per_char)
        if used + cost <= token_budget:
            kept_summaries.append(summary)
            used += cost

    # Per-item ceilings never undercount the combined estimate
    total = estimate_context_tokens(
        kept_messages, kept_pins, kept_summaries, tokens_per_char=tokens_per_char
    )
    return MemoryContext(
        recent_messages=kept_messages,
        semantic_pins=kept_pins,
        summaries=kept_summaries,
        total_tokens=total,
    )
