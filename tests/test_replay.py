"""Tests for replay protection stores.

Tests:
- InMemoryReplayStore reserve/commit/release semantics, expiry and purging
- Concurrent reservation: exactly one winner
- RedisReplayStore SET NX usage, token-checked release, fail-open and fail-closed modes
- ReplayProtection key namespacing
"""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from hookgate.webhooks import InMemoryReplayStore, RedisReplayStore, ReplayStore, ReplayStoreError
from hookgate.webhooks.replay import ReplayProtection


# ── In-memory store ────────────────────────────────────────────────────────


class TestInMemoryReplayStore:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryReplayStore(), ReplayStore)

    def test_first_reserve_wins(self):
        store = InMemoryReplayStore()
        assert store.reserve("github:1") is True
        assert store.reserve("github:1") is False
        assert store.state("github:1") == "reserved"

    def test_release_allows_retry(self):
        store = InMemoryReplayStore()
        store.reserve("k")
        store.release("k")
        assert store.state("k") is None
        assert store.reserve("k") is True

    def test_committed_key_stays(self):
        store = InMemoryReplayStore()
        store.reserve("k")
        store.commit("k")
        store.release("k")
        assert store.state("k") == "committed"
        assert store.reserve("k") is False

    def test_release_unknown_key_is_noop(self):
        store = InMemoryReplayStore()
        store.release("missing")
        assert store.state("missing") is None

    def test_committed_key_expires(self):
        store = InMemoryReplayStore(ttl_seconds=60)
        with freeze_time("2024-01-01 00:00:00") as frozen:
            store.reserve("k")
            store.commit("k")
            frozen.tick(59)
            assert store.reserve("k") is False
            frozen.tick(2)
            assert store.reserve("k") is True

    def test_stale_reservation_expires(self):
        store = InMemoryReplayStore(reservation_ttl_seconds=10)
        with freeze_time("2024-01-01 00:00:00") as frozen:
            store.reserve("k")
            frozen.tick(11)
            assert store.reserve("k") is True

    def test_clear(self):
        store = InMemoryReplayStore()
        store.reserve("a")
        store.commit("b")
        store.clear()
        assert store.reserve("a") is True
        assert store.reserve("b") is True

    def test_concurrent_reserve_single_winner(self):
        store = InMemoryReplayStore()
        results: list[bool] = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(store.reserve("same-key"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1
        assert results.count(False) == 7

    def test_expired_keys_are_purged(self):
        store = InMemoryReplayStore(ttl_seconds=10, purge_interval=1)
        with freeze_time("2024-01-01 00:00:00") as frozen:
            for i in range(1000):
                key = f"github:{i}"
                store.reserve(key)
                store.commit(key)
            assert len(store) == 1000
            frozen.tick(11)
            store.reserve("github:new")
            assert len(store) == 1

    def test_purge_waits_for_interval(self):
        store = InMemoryReplayStore(ttl_seconds=10, purge_interval=5)
        with freeze_time("2024-01-01 00:00:00") as frozen:
            for i in range(3):
                store.reserve(f"k{i}")
                store.commit(f"k{i}")
            frozen.tick(11)
            store.reserve("a")
            assert len(store) == 4
            store.reserve("b")
            assert len(store) == 2

    def test_purge_keeps_live_and_unbounded_keys(self):
        store = InMemoryReplayStore(ttl_seconds=10, reservation_ttl_seconds=None, purge_interval=1)
        with freeze_time("2024-01-01 00:00:00") as frozen:
            store.reserve("old")
            store.commit("old")
            store.reserve("pending")
            frozen.tick(11)
            store.reserve("fresh")
            assert store.state("old") is None
            assert store.state("pending") == "reserved"
            assert store.state("fresh") == "reserved"
            assert len(store) == 2

    def test_invalid_purge_interval(self):
        with pytest.raises(ValueError):
            InMemoryReplayStore(purge_interval=0)


# ── Redis store ────────────────────────────────────────────────────────────


class TestRedisReplayStore:
    def test_reserve_uses_set_nx(self):
        client = MagicMock()
        client.set.return_value = True
        store = RedisReplayStore(client, reservation_ttl_seconds=30)
        assert store.reserve("github:abc") is True
        client.set.assert_called_once()
        args, kwargs = client.set.call_args
        assert args[0] == "hookgate:replay:github:abc"
        assert args[1].startswith("reserved:")
        assert kwargs == {"nx": True, "ex": 30}

    def test_reservation_tokens_are_unique(self):
        client = MagicMock()
        client.set.return_value = True
        store = RedisReplayStore(client)
        store.reserve("a")
        store.reserve("b")
        first, second = (call.args[1] for call in client.set.call_args_list)
        assert first != second

    def test_duplicate_returns_false(self):
        client = MagicMock()
        client.set.return_value = None
        store = RedisReplayStore(client)
        assert store.reserve("github:abc") is False

    def test_commit_sets_ttl(self):
        client = MagicMock()
        store = RedisReplayStore(client, ttl_seconds=3600)
        store.commit("github:abc")
        client.set.assert_called_once_with("hookgate:replay:github:abc", "committed", ex=3600)

    def test_release_compares_token_atomically(self):
        client = MagicMock()
        client.set.return_value = True
        store = RedisReplayStore(client)
        store.reserve("k")
        token = client.set.call_args.args[1]

        store.release("k")

        client.eval.assert_called_once()
        script, numkeys, key, value = client.eval.call_args.args
        assert "DEL" in script
        assert (numkeys, key, value) == (1, "hookgate:replay:k", token)
        client.get.assert_not_called()
        client.delete.assert_not_called()

    def test_release_after_commit_is_noop(self):
        client = MagicMock()
        client.set.return_value = True
        store = RedisReplayStore(client)
        store.reserve("k")
        store.commit("k")
        store.release("k")
        client.eval.assert_not_called()

    def test_release_without_reservation_is_noop(self):
        client = MagicMock()
        store = RedisReplayStore(client)
        store.release("someone-elses-key")
        client.eval.assert_not_called()

    def test_custom_key_prefix(self):
        client = MagicMock()
        client.set.return_value = True
        store = RedisReplayStore(client, key_prefix="shop:dedup")
        store.reserve("k")
        assert client.set.call_args.args[0] == "shop:dedup:k"

    def test_redis_down_fails_closed(self):
        client = MagicMock()
        client.set.side_effect = ConnectionError("Redis down")
        store = RedisReplayStore(client)
        with pytest.raises(ReplayStoreError):
            store.reserve("k")

    def test_redis_down_fail_open(self):
        client = MagicMock()
        client.set.side_effect = ConnectionError("Redis down")
        store = RedisReplayStore(client, fail_open=True)
        assert store.reserve("k") is True
        store.release("k")
        client.eval.assert_not_called()

    def test_release_error_wrapped(self):
        client = MagicMock()
        client.set.return_value = True
        client.eval.side_effect = ConnectionError("Redis down")
        store = RedisReplayStore(client)
        store.reserve("k")
        with pytest.raises(ReplayStoreError):
            store.release("k")


# ── Key namespacing ────────────────────────────────────────────────────────


class TestReplayProtection:
    def test_key_defaults_to_provider_namespace(self):
        protection = ReplayProtection(store=InMemoryReplayStore())
        assert protection.key_for("github", "guid-1") == "github:guid-1"

    def test_key_prefix_overrides_provider(self):
        protection = ReplayProtection(store=InMemoryReplayStore(), key_prefix="gh-prod")
        assert protection.key_for("github", "guid-1") == "gh-prod:guid-1"
