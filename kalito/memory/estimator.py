"""Token estimation for memory context."""

import math
from collections.abc import Iterable

from kalito.memory.types import (
    ConversationSummary,
    Message,
    SemanticPin,
    TOKENS_PER_CHAR,
)


def estimate_text_tokens(text: str, tokens_per_char: float = TOKENS_PER_CHAR) -> int:
    """
    Estimate the number of tokens in a text string.

    This is a character-count approximation, not a tokenizer.

    Args:
        text: The text to estimate tokens for.
        tokens_per_char: Ratio applied to the character count.

    Returns:
        Estimated token count.
    """
    if not text:
        return 0
    return math.ceil(len(text) * tokens_per_char)


def count_characters(
    messages: Iterable[Message] = (),
    pins: Iterable[SemanticPin] = (),
    summaries: Iterable[ConversationSummary] = (),
) -> int:
    """Total characters across messages, pins and summaries."""
    total = sum(len(m.text) for m in messages)
    total += sum(len(p.content) for p in pins)
    total += sum(len(s.summary_text) for s in summaries)
    return total


def estimate_context_tokens(
    messages: Iterable[Message] = (),
    pins: Iterable[SemanticPin] = (),
    summaries: Iterable[ConversationSummary] = (),
    tokens_per_char: float = TOKENS_PER_CHAR,
) -> int:
    """
    Estimate total tokens for a set of context items.

    The ratio is applied once to the combined character count.

    Args:
        messages: Recent messages.
        pins: Semantic pins.
        summaries: Conversation summaries.
        tokens_per_char: Ratio applied to the character count.

    Returns:
        Total estimated token count.
    """
    total_chars = count_characters(messages, pins, summaries)
    return math.ceil(total_chars * tokens_per_char)
