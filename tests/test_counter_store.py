"""Unit tests for the in-memory counter store."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import InMemoryCounterStore


def test_counts_up_within_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    assert store.increment("k", window_ms=60_000).count == 1
    assert store.increment("k", window_ms=60_000).count == 2
    snapshot = store.increment("k", window_ms=60_000)
    assert snapshot.count == 3
    assert snapshot.ttl_ms == 60_000


def test_later_increments_do_not_extend_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    store.increment("k", window_ms=10_000)
    clock.return_value = 1004.0
    snapshot = store.increment("k", window_ms=10_000)

    assert snapshot.count == 2
    assert snapshot.ttl_ms == 6_000


def test_resets_on_new_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    store.increment("k", window_ms=10_000)
    store.increment("k", window_ms=10_000)

    clock.return_value = 1010.0
    snapshot = store.increment("k", window_ms=10_000)
    assert snapshot.count == 1
    assert snapshot.ttl_ms == 10_000


def test_isolated_by_key() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    store.increment("k1", window_ms=60_000)
    store.increment("k1", window_ms=60_000)

    assert store.increment("k2", window_ms=60_000).count == 1


def test_reset_starts_fresh_window() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    store.increment("k", window_ms=60_000)
    store.increment("k", window_ms=60_000)
    store.reset("k")

    assert store.increment("k", window_ms=60_000).count == 1


def test_reset_unknown_key_is_noop() -> None:
    store = InMemoryCounterStore()
    store.reset("missing")
    assert store.size() == 0


def test_expired_keys_are_purged() -> None:
    clock = Mock(return_value=1000.0)
    store = InMemoryCounterStore(clock=clock)

    store.increment("a", window_ms=1_000)
    store.increment("b", window_ms=1_000)
    assert store.size() == 2

    clock.return_value = 1002.0
    store.increment("c", window_ms=1_000)
    assert store.size() == 1


def test_concurrent_increments_never_share_a_value() -> None:
    store = InMemoryCounterStore()

    with ThreadPoolExecutor(max_workers=16) as pool:
        counts = list(pool.map(lambda _: store.increment("k", window_ms=60_000).count, range(200)))

    assert sorted(counts) == list(range(1, 201))


@pytest.mark.parametrize("window_ms", [0, -1])
def test_invalid_window(window_ms: int) -> None:
    store = InMemoryCounterStore()

    with pytest.raises(ValueError):
        store.increment("k", window_ms=window_ms)


def test_empty_key_rejected() -> None:
    store = InMemoryCounterStore()

    with pytest.raises(ValueError):
        store.increment("", window_ms=1_000)


def test_in_memory_store_is_always_reachable() -> None:
    assert InMemoryCounterStore().ping() is True
