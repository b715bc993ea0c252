"""Tests for the token bucket rate limiter."""

import threading
from unittest.mock import Mock, patch

import pytest

from bankbot.app.middleware.rate_limit import (
    POLICIES,
    Admitted,
    BucketStore,
    RateCategory,
    RateLimiter,
    RatePolicy,
    Rejected,
    bucket_key,
    policy_for,
    resolve_category,
)


class TestPolicies:
    """Tests for the fixed per-category policies."""

    def test_policy_table(self):
        assert POLICIES[RateCategory.CHAT] == RatePolicy(100, 100, 60.0)
        assert POLICIES[RateCategory.VOICE] == RatePolicy(20, 20, 60.0)
        assert POLICIES[RateCategory.TRANSFER] == RatePolicy(5, 5, 60.0)

    def test_general_uses_chat_policy(self):
        assert policy_for(RateCategory.GENERAL) == POLICIES[RateCategory.CHAT]

    def test_unknown_category_falls_back_to_chat(self):
        assert RateCategory.parse("bogus") is RateCategory.CHAT
        assert RateCategory.parse(None) is RateCategory.CHAT
        assert policy_for("bogus") == POLICIES[RateCategory.CHAT]

    def test_parse_is_case_insensitive(self):
        assert RateCategory.parse(" VOICE ") is RateCategory.VOICE

    def test_refill_rate(self):
        assert POLICIES[RateCategory.TRANSFER].refill_rate == pytest.approx(5 / 60)


class TestRateLimiter:
    """Tests for RateLimiter.admit."""

    def test_first_request_admitted(self, limiter):
        decision = limiter.admit(RateCategory.CHAT, "alice")
        assert isinstance(decision, Admitted)
        assert decision.allowed is True
        assert decision.remaining == 99
        assert decision.limit == 100
        assert decision.category is RateCategory.CHAT

    @pytest.mark.parametrize(
        ("category", "capacity"),
        [
            (RateCategory.CHAT, 100),
            (RateCategory.VOICE, 20),
            (RateCategory.TRANSFER, 5),
            (RateCategory.GENERAL, 100),
        ],
    )
    def test_rejects_after_capacity(self, limiter, category, capacity):
        for _ in range(capacity):
            assert isinstance(limiter.admit(category, "alice"), Admitted)

        decision = limiter.admit(category, "alice")
        assert isinstance(decision, Rejected)
        assert decision.allowed is False

    def test_retry_after_is_time_to_one_token(self, limiter):
        for _ in range(5):
            limiter.admit(RateCategory.TRANSFER, "alice")

        decision = limiter.admit(RateCategory.TRANSFER, "alice")
        assert decision.retry_after_seconds == pytest.approx(12.0)

    def test_partial_refill_shortens_retry_after(self, limiter, clock):
        for _ in range(5):
            limiter.admit(RateCategory.TRANSFER, "alice")

        clock.advance(6)
        decision = limiter.admit(RateCategory.TRANSFER, "alice")
        assert isinstance(decision, Rejected)
        assert decision.retry_after_seconds == pytest.approx(6.0)

    def test_refill_after_wait(self, limiter, clock):
        for _ in range(5):
            limiter.admit(RateCategory.TRANSFER, "alice")
        assert isinstance(limiter.admit(RateCategory.TRANSFER, "alice"), Rejected)

        clock.advance(13)
        assert isinstance(limiter.admit(RateCategory.TRANSFER, "alice"), Admitted)

    def test_tokens_never_exceed_capacity(self, limiter, store, clock):
        limiter.admit(RateCategory.VOICE, "alice")
        clock.advance(10_000)

        decision = limiter.admit(RateCategory.VOICE, "alice")
        assert decision.remaining_tokens == pytest.approx(19.0)

        bucket = store.peek(bucket_key(RateCategory.VOICE, "alice"))
        assert bucket.available(clock()) <= bucket.capacity

    def test_tokens_never_negative(self, limiter, store):
        for _ in range(10):
            limiter.admit(RateCategory.TRANSFER, "alice")

        tokens, _ = store.peek(bucket_key(RateCategory.TRANSFER, "alice")).snapshot()
        assert tokens == 0.0

    def test_refill_is_monotonic(self, limiter, store, clock):
        for _ in range(20):
            limiter.admit(RateCategory.VOICE, "alice")
        bucket = store.peek(bucket_key(RateCategory.VOICE, "alice"))

        previous = bucket.available(clock())
        for _ in range(6):
            clock.advance(10)
            current = bucket.available(clock())
            assert current > previous
            previous = current

        clock.advance(1000)
        assert bucket.available(clock()) == bucket.capacity

    def test_different_keys_independent(self, limiter):
        for _ in range(5):
            limiter.admit(RateCategory.TRANSFER, "alice")
        assert isinstance(limiter.admit(RateCategory.TRANSFER, "alice"), Rejected)

        assert isinstance(limiter.admit(RateCategory.TRANSFER, "bob"), Admitted)

    def test_categories_have_separate_buckets(self, limiter, store):
        for _ in range(5):
            limiter.admit(RateCategory.TRANSFER, "alice")

        assert isinstance(limiter.admit(RateCategory.CHAT, "alice"), Admitted)
        assert "transfer_alice" in store
        assert "chat_alice" in store

    def test_unknown_category_string(self, limiter, store):
        decision = limiter.admit("bogus", "alice")
        assert decision.limit == 100
        assert decision.category is RateCategory.CHAT
        assert "chat_alice" in store

    def test_records_metrics(self, store):
        metrics = Mock()
        limiter = RateLimiter(store=store, metrics=metrics)
        for _ in range(6):
            limiter.admit(RateCategory.TRANSFER, "alice")

        calls = [c.args for c in metrics.record_admission.call_args_list]
        assert calls.count(("transfer", True)) == 5
        assert calls.count(("transfer", False)) == 1


class TestConcurrency:
    """Admission under concurrent callers."""

    def _run_concurrently(self, count, target):
        barrier = threading.Barrier(count)

        def worker(index):
            barrier.wait()
            target(index)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def test_no_double_spend(self, limiter, store):
        results = []
        lock = threading.Lock()

        def admit(_):
            decision = limiter.admit(RateCategory.TRANSFER, "alice")
            with lock:
                results.append(decision)

        self._run_concurrently(50, admit)

        admitted = [d for d in results if isinstance(d, Admitted)]
        assert len(results) == 50
        assert len(admitted) == 5
        tokens, _ = store.peek("transfer_alice").snapshot()
        assert tokens == 0.0

    def test_no_lost_decrement(self, limiter, store):
        self._run_concurrently(40, lambda _: limiter.admit(RateCategory.CHAT, "alice"))

        tokens, _ = store.peek("chat_alice").snapshot()
        assert tokens == pytest.approx(60.0)

    def test_single_bucket_per_key(self, store):
        buckets = []
        lock = threading.Lock()
        policy = POLICIES[RateCategory.CHAT]

        def create(_):
            bucket = store.get_or_create("chat_alice", policy)
            with lock:
                buckets.append(bucket)

        self._run_concurrently(30, create)

        assert len(store) == 1
        assert all(bucket is buckets[0] for bucket in buckets)

    def test_bucket_evicted_during_admit_is_not_charged(self, limiter, store):
        lookup = store.get_or_create
        lookups = []

        def evict_after_first_lookup(key, policy):
            bucket = lookup(key, policy)
            if not lookups:
                store.clear()
            lookups.append(key)
            return bucket

        with patch.object(store, "get_or_create", side_effect=evict_after_first_lookup):
            decisions = [limiter.admit("transfer", "user:alice") for _ in range(6)]

        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        assert decisions[0].remaining_tokens == 4
        assert len(lookups) == 7
        assert len(store) == 1


class TestBucketStore:
    """Tests for bucket storage and eviction."""

    def test_bucket_created_full(self, store):
        bucket = store.get_or_create("voice_alice", POLICIES[RateCategory.VOICE])
        assert bucket.tokens == 20.0
        assert bucket.capacity == 20.0

    def test_peek_does_not_create(self, store):
        assert store.peek("chat_nobody") is None
        assert len(store) == 0

    def test_evict_idle(self, store, clock):
        policy = POLICIES[RateCategory.CHAT]
        store.get_or_create("chat_old", policy)
        clock.advance(120)
        store.get_or_create("chat_new", policy)

        removed = store.evict_idle(60)

        assert removed == 1
        assert "chat_old" not in store
        assert "chat_new" in store

    def test_limiter_evict_idle(self, limiter, store, clock):
        limiter.admit(RateCategory.CHAT, "alice")
        clock.advance(3601)
        assert limiter.evict_idle(3600) == 1
        assert len(store) == 0

    def test_max_entries_evicts_oldest(self, clock):
        store = BucketStore(clock=clock, max_entries=10)
        policy = POLICIES[RateCategory.CHAT]
        for i in range(10):
            store.get_or_create(f"chat_{i}", policy)
            clock.advance(1)

        store.get_or_create("chat_extra", policy)

        assert "chat_0" not in store
        assert "chat_1" not in store
        assert "chat_2" in store
        assert "chat_extra" in store

    def test_clear(self, store):
        store.get_or_create("chat_alice", POLICIES[RateCategory.CHAT])
        store.clear()
        assert len(store) == 0


class TestResolveCategory:
    """Tests for path to category resolution."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/api/chatbot/voice", RateCategory.VOICE),
            ("/api/chatbot/transfer", RateCategory.TRANSFER),
            ("/api/chatbot/chat", RateCategory.CHAT),
            ("/api/chatbot/intents", RateCategory.GENERAL),
            ("/api/chatbot/custom", RateCategory.GENERAL),
            ("/", RateCategory.GENERAL),
        ],
    )
    def test_resolve(self, path, expected):
        assert resolve_category(path) is expected

    def test_bucket_key_format(self):
        assert bucket_key(RateCategory.VOICE, "user:alice") == "voice_user:alice"
