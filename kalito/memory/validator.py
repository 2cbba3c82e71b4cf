"""Summary validation and deterministic fallback summaries.

Local models asked to "summarize" a creative conversation tend to continue
it instead (a poem, a story, a code listing). The validator is a list of
named rules; a candidate is rejected when any rule fires.
"""

import re
import string
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from loguru import logger

from kalito.memory.types import Message

DEFAULT_MAX_CHARS = 300
DEFAULT_MAX_RATIO = 0.30
DEFAULT_MIN_OVERLAP = 0.10
MIN_WORD_LENGTH = 3  # only words longer than this count toward overlap

MAX_FALLBACK_TOPICS = 3
FALLBACK_QUOTE_CHARS = 30
OFFLINE_QUOTE_CHARS = 50
OFFLINE_PREFIX = "Offline summary:"

_STRIP_CHARS = string.punctuation + "“”‘’"

# Topic name -> keywords matched as lowercase substrings of user messages
TOPIC_VOCABULARY: dict[str, tuple[str, ...]] = {
    "programming": ("programming", "code", "function", "python", "javascript"),
    "database": ("database", "sql", "table", "query"),
    "API": ("api", "endpoint", "request"),
    "troubleshooting": ("bug", "error", "fix", "issue", "problem"),
    "poetry": ("poetry", "poem", "verse"),
    "creative writing": ("story", "narrative", "creative writing"),
    "music": ("music", "song", "lyrics"),
    "help/explanation": ("help", "how to", "explain"),
    "project work": ("project", "feature", "task"),
    "Q&A": ("question", "what is", "why"),
}

Check = Callable[[str, Sequence[Message]], bool]


@dataclass(frozen=True)
class SummaryRule:
    """A named check that returns True when the candidate is NOT a summary."""

    name: str
    check: Check
    description: str = ""

    def fires(self, candidate: str, sources: Sequence[Message]) -> bool:
        return self.check(candidate, sources)


@dataclass
class ValidationResult:
    """Outcome of validating one candidate summary."""

    valid: bool
    failed_rules: list[str] = field(default_factory=list)
    trusted: bool = False

    def __bool__(self) -> bool:
        return self.valid


def source_length(sources: Sequence[Message]) -> int:
    """Total characters across source messages."""
    return sum(len(m.text or "") for m in sources)


def source_text(sources: Sequence[Message]) -> str:
    """Lowercased concatenation of source message texts."""
    return " ".join(m.text or "" for m in sources).lower()


def word_overlap(candidate: str, sources: Sequence[Message]) -> float:
    """
    Share of candidate words (longer than three characters) that appear
    verbatim in the source text.

    Returns:
        Overlap in [0.0, 1.0]; 0.0 when the candidate has no such words.
    """
    words = [w.strip(_STRIP_CHARS) for w in candidate.lower().split()]
    words = [w for w in words if len(w) > MIN_WORD_LENGTH]
    if not words:
        return 0.0
    text = source_text(sources)
    matching = sum(1 for w in words if w in text)
    return matching / len(words)


def _pattern_rule(name: str, pattern: str, description: str, flags: int = 0) -> SummaryRule:
    regex = re.compile(pattern, flags)
    return SummaryRule(
        name=name,
        check=lambda candidate, _sources: regex.search(candidate) is not None,
        description=description,
    )


GENERATED_CONTENT_RULES: tuple[SummaryRule, ...] = (
    _pattern_rule(
        "filler_opening",
        r"^\s*(here's|here is|certainly|let me|i'll create|i can)\b",
        "Starts like an assistant reply rather than a summary",
        re.IGNORECASE,
    ),
    _pattern_rule("code_block", r"```", "Contains a fenced code block"),
    _pattern_rule(
        "title",
        r"^\s*(title\s*:|#{1,6}\s)",
        "Looks like a title or markdown heading",
        re.IGNORECASE | re.MULTILINE,
    ),
    _pattern_rule(
        "story_opening",
        r"^\s*(once upon a time|long ago|in a (land|world|kingdom|galaxy|village)\b)",
        "Opens like a story",
        re.IGNORECASE,
    ),
    _pattern_rule(
        "chapter_heading",
        r"^\s*(chapter\b|scene\b|act [ivx]+\b)",
        "Chapter, scene or act heading",
        re.IGNORECASE | re.MULTILINE,
    ),
    _pattern_rule(
        "numbered_list",
        r"^\s*\d+[.)]\s",
        "Numbered list item",
        re.MULTILINE,
    ),
    _pattern_rule(
        "dialogue_line",
        r"^\s*(?!Summary:)[A-Z][A-Za-z]+:\s",
        "Script-style 'Name:' dialogue line",
        re.MULTILINE,
    ),
)


class SummaryValidator:
    """
    Decides whether model output is really a summary of its sources.

    Rules are evaluated in order and all failures are reported. The
    deterministic fallback for the same sources is always accepted.
    """

    def __init__(
        self,
        max_chars: int = DEFAULT_MAX_CHARS,
        max_ratio: float = DEFAULT_MAX_RATIO,
        min_overlap: float = DEFAULT_MIN_OVERLAP,
        extra_rules: Sequence[SummaryRule] = (),
    ):
        self.max_chars = max_chars
        self.max_ratio = max_ratio
        self.min_overlap = min_overlap
        self.rules: list[SummaryRule] = [
            SummaryRule("too_long", self._too_long, f"Longer than {max_chars} characters"),
            SummaryRule("low_compression", self._low_compression, f"Ratio above {max_ratio:.0%}"),
            *GENERATED_CONTENT_RULES,
            SummaryRule("low_overlap", self._low_overlap, f"Word overlap below {min_overlap:.0%}"),
            *extra_rules,
        ]

    def _too_long(self, candidate: str, _sources: Sequence[Message]) -> bool:
        return len(candidate) > self.max_chars

    def _low_compression(self, candidate: str, sources: Sequence[Message]) -> bool:
        total = source_length(sources)
        if total == 0:
            return len(candidate) > 0
        return len(candidate) / total > self.max_ratio

    def _low_overlap(self, candidate: str, sources: Sequence[Message]) -> bool:
        return word_overlap(candidate, sources) < self.min_overlap

    def add_rule(self, rule: SummaryRule) -> None:
        """Append a rule; it runs after the built-in rules."""
        self.rules.append(rule)

    def rule_names(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def check(self, candidate: str, sources: Sequence[Message]) -> ValidationResult:
        """
        Run every rule against a candidate.

        Args:
            candidate: Model output to validate.
            sources: Messages the candidate claims to summarize.

        Returns:
            ValidationResult listing the rules that fired.
        """
        if candidate == fallback_summary(sources):
            return ValidationResult(valid=True, trusted=True)

        failed = [rule.name for rule in self.rules if rule.fires(candidate, sources)]
        if failed:
            logger.debug(f"Summary rejected by rules: {', '.join(failed)}")
        return ValidationResult(valid=not failed, failed_rules=failed)

    def is_valid(self, candidate: str, sources: Sequence[Message]) -> bool:
        """Return True when no rule fires for the candidate."""
        return self.check(candidate, sources).valid


def extract_topics(sources: Sequence[Message], limit: int = MAX_FALLBACK_TOPICS) -> list[str]:
    """
    Find topic names mentioned in user-authored messages.

    Topics are collected in order of first appearance, message by message.
    """
    topics: list[str] = []
    for message in sources:
        if message.role != "user":
            continue
        text = (message.text or "").lower()
        for topic, keywords in TOPIC_VOCABULARY.items():
            if topic not in topics and any(k in text for k in keywords):
                topics.append(topic)
    return topics[:limit]


def fallback_summary(sources: Sequence[Message]) -> str:
    """
    Build a deterministic summary without a model.

    Args:
        sources: Messages to describe.

    Returns:
        One-sentence description naming topics, or quoting the first and
        last user messages when no topic matches.
    """
    count = len(sources)
    user_count = sum(1 for m in sources if m.role == "user")
    assistant_count = sum(1 for m in sources if m.role == "assistant")
    topics = extract_topics(sources)

    if topics:
        return (
            f"Conversation with {count} messages ({user_count} user, "
            f"{assistant_count} assistant) about: {', '.join(topics)}."
        )

    user_messages = [m for m in sources if m.role == "user"]
    first = user_messages[0].text[:FALLBACK_QUOTE_CHARS] if user_messages else "N/A"
    last = user_messages[-1].text[:FALLBACK_QUOTE_CHARS] if user_messages else "N/A"
    return (
        f'Conversation with {count} messages. Started with: "{first}..." '
        f'Recent topic: "{last}..."'
    )


def offline_summary(sources: Sequence[Message]) -> str:
    """
    Build the summary used when the completion service is unreachable.

    Distinct from ``fallback_summary`` so outages can be told apart from
    content-quality fallbacks.
    """
    first = sources[0].text[:OFFLINE_QUOTE_CHARS] if sources else "N/A"
    last = sources[-1].text[:OFFLINE_QUOTE_CHARS] if sources else "N/A"
    return (
        f'{OFFLINE_PREFIX} {len(sources)} messages. '
        f'Started: "{first}..." Recent: "{last}..."'
    )


def is_offline_summary(text: str) -> bool:
    return text.startswith(OFFLINE_PREFIX)
