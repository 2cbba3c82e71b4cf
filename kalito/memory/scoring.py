"""Message importance scoring."""

from collections.abc import Iterable

from kalito.memory.types import Message

BASE_SCORE = 0.5
QUESTION_BOOST = 0.2
CODE_BOOST = 0.15
PROBLEM_BOOST = 0.1
LENGTH_BOOST = 0.1
ASSISTANT_BOOST = 0.05
LONG_MESSAGE_CHARS = 200

INTERROGATIVES = ("what", "how", "why")
CODE_MARKERS = ("```", "function", "class")
PROBLEM_KEYWORDS = ("error", "problem", "issue")


def score_importance(message: Message) -> float:
    """
    Score how relevant a message is for later recall.

    Pure and deterministic: the same message always gets the same score.

    Args:
        message: Message to score.

    Returns:
        Score in [0.0, 1.0].
    """
    text = (message.text or "").lower()
    score = BASE_SCORE

    if "?" in text or text.startswith(INTERROGATIVES):
        score += QUESTION_BOOST

    if any(marker in text for marker in CODE_MARKERS):
        score += CODE_BOOST

    if any(keyword in text for keyword in PROBLEM_KEYWORDS):
        score += PROBLEM_BOOST

    if len(text) > LONG_MESSAGE_CHARS:
        score += LENGTH_BOOST

    if message.role == "assistant":
        score += ASSISTANT_BOOST

    return min(score, 1.0)


def score_messages(messages: Iterable[Message]) -> list[tuple[int, float]]:
    """
    Score a batch of messages.

    Args:
        messages: Messages to score.

    Returns:
        List of (message_id, score) pairs in input order.
    """
    return [(message.id, score_importance(message)) for message in messages]
