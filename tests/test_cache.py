"""Tests for the session cache."""

import threading

import pytest

from conftest import FakeClock, make_message
from kalito.memory.cache import SessionCache


@pytest.fixture
def cache(clock: FakeClock) -> SessionCache:
    return SessionCache(ttl_seconds=5.0, clock=clock)


# ── Reads and expiry ────────────────────────────────────────────────


class TestExpiry:
    def test_miss_when_empty(self, cache):
        assert cache.get_recent("s1", 8) is None
        assert cache.get_count("s1") is None
        assert cache.misses == 2

    def test_hit_within_ttl(self, cache, clock):
        messages = [make_message("hi")]
        cache.put_recent("s1", 8, messages)
        clock.advance(4.9)
        assert cache.get_recent("s1", 8) == messages
        assert cache.hits == 1

    def test_expires_at_ttl(self, cache, clock):
        cache.put_count("s1", 3)
        clock.advance(5.0)
        assert cache.get_count("s1") is None

    def test_zero_count_is_a_hit(self, cache):
        cache.put_count("s1", 0)
        assert cache.get_count("s1") == 0

    def test_shapes_are_separate(self, cache):
        cache.put_recent("s1", 8, [make_message("a")])
        assert cache.get_recent("s1", 10) is None

    def test_returned_list_is_a_copy(self, cache):
        cache.put_recent("s1", 8, [make_message("a")])
        cache.get_recent("s1", 8).clear()
        assert len(cache.get_recent("s1", 8)) == 1

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            SessionCache(ttl_seconds=0)


class TestModelLookup:
    def test_miss(self, cache):
        assert cache.get_model("s1") == (False, None)

    def test_cached_model(self, cache):
        cache.put_model("s1", "phi3-mini")
        assert cache.get_model("s1") == (True, "phi3-mini")

    def test_cached_absence(self, cache):
        cache.put_model("s1", None)
        assert cache.get_model("s1") == (True, None)


# ── Invalidation and maintenance ────────────────────────────────────


class TestInvalidate:
    def test_invalidate_clears_all_shapes(self, cache):
        cache.put_recent("s1", 8, [make_message("a")])
        cache.put_recent("s1", 10, [make_message("a")])
        cache.put_count("s1", 1)
        cache.invalidate("s1")
        assert cache.get_recent("s1", 8) is None
        assert cache.get_recent("s1", 10) is None
        assert cache.get_count("s1") is None

    def test_invalidate_is_per_session(self, cache):
        cache.put_count("s1", 1)
        cache.put_count("s2", 2)
        cache.invalidate("s1")
        assert cache.get_count("s2") == 2

    def test_invalidate_unknown_session(self, cache):
        cache.invalidate("nope")
        assert len(cache) == 0

    def test_fill_started_before_invalidate_is_dropped(self, cache):
        generation = cache.generation("s1")
        cache.invalidate("s1")
        cache.put_recent("s1", 8, [make_message("stale")], generation=generation)
        cache.put_count("s1", 3, generation=generation)
        cache.put_model("s1", "phi3-mini", generation=generation)

        assert cache.get_recent("s1", 8) is None
        assert cache.get_count("s1") is None
        assert cache.get_model("s1") == (False, None)

    def test_fill_with_current_generation_is_kept(self, cache):
        cache.invalidate("s1")
        generation = cache.generation("s1")
        cache.put_count("s1", 3, generation=generation)
        assert cache.get_count("s1") == 3

    def test_generation_is_per_session(self, cache):
        generation = cache.generation("s2")
        cache.invalidate("s1")
        cache.put_count("s2", 2, generation=generation)
        assert cache.get_count("s2") == 2


class TestSweep:
    def test_sweep_removes_only_expired(self, cache, clock):
        cache.put_count("s1", 1)
        clock.advance(3)
        cache.put_count("s2", 2)
        clock.advance(3)
        assert cache.sweep() == 1
        assert len(cache) == 1
        assert cache.get_count("s2") == 2

    def test_clear(self, cache):
        cache.put_count("s1", 1)
        cache.clear()
        assert len(cache) == 0


class TestConcurrency:
    def test_parallel_writers_do_not_interfere(self):
        cache = SessionCache(ttl_seconds=60)

        def work(n: int):
            sid = f"s{n}"
            for i in range(200):
                cache.put_count(sid, i)
                assert cache.get_count(sid) == i

        threads = [threading.Thread(target=work, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(cache.get_count(f"s{n}") == 199 for n in range(8))
