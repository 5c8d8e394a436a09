import pytest

from taskflow_api.cache import BoundedTTLCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: BoundedTTLCache[str] = BoundedTTLCache(max_entries=4, ttl_seconds=30, clock=clock)
    cache.set("exec-1", "detail")

    clock.now += 29
    assert cache.get("exec-1") == "detail"

    clock.now += 1
    assert cache.get("exec-1") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted() -> None:
    cache: BoundedTTLCache[int] = BoundedTTLCache(max_entries=2, ttl_seconds=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1

    cache.set("c", 3)

    assert "b" not in cache
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_setting_existing_key_refreshes_expiry() -> None:
    clock = FakeClock()
    cache: BoundedTTLCache[int] = BoundedTTLCache(max_entries=2, ttl_seconds=10, clock=clock)
    cache.set("a", 1)
    clock.now += 8
    cache.set("a", 2)
    clock.now += 8

    assert cache.get("a") == 2


def test_invalidate_and_clear() -> None:
    cache: BoundedTTLCache[int] = BoundedTTLCache(max_entries=3, ttl_seconds=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    cache.invalidate("missing")
    assert "a" not in cache
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_cache_requires_positive_bound() -> None:
    with pytest.raises(ValueError):
        BoundedTTLCache(max_entries=0, ttl_seconds=60)
