"""Tests for token estimation and budget truncation."""

import math

from conftest import make_message
from kalito.memory.estimator import estimate_context_tokens, estimate_text_tokens
from kalito.memory.truncation import order_pins, truncate_context
from kalito.memory.types import ConversationSummary, SemanticPin


def pin(content: str, score: float, id: str = "p") -> SemanticPin:
    return SemanticPin(id=id, session_id="s1", content=content, importance_score=score)


def summary(text: str, id: str = "sum") -> ConversationSummary:
    return ConversationSummary(
        id=id,
        session_id="s1",
        summary_text=text,
        message_count=15,
        start_message_id=1,
        end_message_id=15,
        importance_score=0.7,
    )


def messages(n: int, size: int = 40):
    return [make_message(chr(ord("a") + i) * size, id=i + 1) for i in range(n)]


# ── Estimator ───────────────────────────────────────────────────────


class TestEstimator:
    def test_text(self):
        assert estimate_text_tokens("abcd") == 3
        assert estimate_text_tokens("") == 0

    def test_context_applies_ratio_once(self):
        # 3 + 3 chars -> ceil(4.5) = 5, not ceil(2.25) * 2 = 6
        msgs = [make_message("abc"), make_message("def")]
        assert estimate_context_tokens(msgs) == 5

    def test_all_item_kinds(self):
        total = estimate_context_tokens([make_message("a" * 10)], [pin("b" * 10, 0.5)], [summary("c" * 10)])
        assert total == math.ceil(30 * 0.75)


# ── Truncation ──────────────────────────────────────────────────────


class TestTruncateContext:
    def test_keeps_three_most_recent_messages(self):
        msgs = messages(8)
        ctx = truncate_context(msgs, [], [], token_budget=10_000)
        assert [m.id for m in ctx.recent_messages] == [6, 7, 8]

    def test_floor_survives_tiny_budget(self):
        msgs = messages(5, size=500)
        ctx = truncate_context(msgs, [pin("fact", 0.9)], [summary("earlier")], token_budget=1)
        assert len(ctx.recent_messages) == 3
        assert ctx.semantic_pins == []
        assert ctx.summaries == []

    def test_fewer_than_three_messages(self):
        ctx = truncate_context(messages(2), [], [], token_budget=0)
        assert len(ctx.recent_messages) == 2

    def test_pins_ordered_by_importance_before_budget(self):
        pins = [pin("low", 0.3, "a"), pin("high", 0.9, "b"), pin("mid", 0.6, "c")]
        assert [p.importance_score for p in order_pins(pins)] == [0.9, 0.6, 0.3]
        ctx = truncate_context([], pins, [], token_budget=10_000)
        assert [p.importance_score for p in ctx.semantic_pins] == [0.9, 0.6, 0.3]

    def test_equal_scores_keep_incoming_order(self):
        pins = [pin("first", 0.5, "a"), pin("second", 0.5, "b")]
        assert [p.id for p in order_pins(pins)] == ["a", "b"]

    def test_oversized_pin_skipped_smaller_admitted(self):
        # Floor: 3 x 40 chars = 90 tokens; 30 tokens left
        pins = [pin("x" * 400, 0.9, "big"), pin("y" * 20, 0.5, "small")]
        ctx = truncate_context(messages(3), pins, [], token_budget=120)
        assert [p.id for p in ctx.semantic_pins] == ["small"]

    def test_summaries_keep_given_order_and_fill_remaining(self):
        sums = [summary("n" * 20, "newest"), summary("m" * 400, "huge"), summary("o" * 20, "oldest")]
        ctx = truncate_context(messages(3), [], sums, token_budget=130)
        assert [s.id for s in ctx.summaries] == ["newest", "oldest"]

    def test_pins_take_priority_over_summaries(self):
        ctx = truncate_context(
            messages(3),
            [pin("p" * 20, 0.8)],
            [summary("s" * 20)],
            token_budget=105,
        )
        assert len(ctx.semantic_pins) == 1
        assert ctx.summaries == []

    def test_total_within_budget_unless_floor_only(self):
        msgs = messages(6, size=60)
        pins = [pin("p" * n, 0.1 * n, str(n)) for n in range(1, 9)]
        sums = [summary("s" * (n * 7), str(n)) for n in range(1, 5)]
        for budget in (0, 50, 135, 140, 150, 200, 400):
            ctx = truncate_context(msgs, pins, sums, token_budget=budget)
            floor_only = not ctx.semantic_pins and not ctx.summaries
            assert ctx.total_tokens <= budget or floor_only
            assert len(ctx.recent_messages) == 3

    def test_total_tokens_matches_kept_items(self):
        ctx = truncate_context(messages(4), [pin("p" * 8, 0.5)], [summary("s" * 8)], token_budget=10_000)
        expected = estimate_context_tokens(ctx.recent_messages, ctx.semantic_pins, ctx.summaries)
        assert ctx.total_tokens == expected
