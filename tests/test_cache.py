import pytest

from ecosnap.cache import TTLCache


@pytest.fixture
def clock():
    now = [100.0]
    tick = lambda: now[0]
    tick.now = now
    return tick


def test_entry_lives_until_ttl(clock):
    cache = TTLCache(ttl=10, clock=clock)
    cache.set("k", {"reply": "hi"})
    clock.now[0] = 109.999
    assert cache.get("k") == {"reply": "hi"}
    clock.now[0] = 110.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_missing_key():
    assert TTLCache().get("nope") is None


def test_set_refreshes_timestamp(clock):
    cache = TTLCache(ttl=10, clock=clock)
    cache.set("k", 1)
    clock.now[0] = 108.0
    cache.set("k", 2)
    clock.now[0] = 115.0
    assert cache.get("k") == 2


def test_purge_drops_only_expired(clock):
    cache = TTLCache(ttl=10, clock=clock)
    cache.set("old", 1)
    clock.now[0] = 105.0
    cache.set("new", 2)
    clock.now[0] = 111.0
    assert cache.purge() == 1
    assert len(cache) == 1
    assert cache.get("new") == 2


def test_set_evicts_expired_entries(clock):
    cache = TTLCache(ttl=10, clock=clock)
    for i in range(5):
        cache.set(f"user:{i}", i)
    clock.now[0] = 200.0
    cache.set("fresh", "x")
    # stale keys that are never read again still go away
    assert len(cache) == 1
