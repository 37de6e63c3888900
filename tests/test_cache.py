import pytest

from cacheproxy.cache import ELEMENT_OVERHEAD, Cache, CacheElement


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def test_find_miss_returns_none(clock):
    cache = Cache(clock=clock)
    assert cache.find("GET nothing") is None


def test_add_then_find(clock):
    cache = Cache(clock=clock)
    assert cache.add(b"body", "req") is True
    element = cache.find("req")
    assert element.data == b"body"
    assert element.url == "req"


def test_contains_and_len(clock):
    cache = Cache(clock=clock)
    cache.add(b"one", "a")
    cache.add(b"two", "b")
    assert len(cache) == 2
    assert "a" in cache
    assert "c" not in cache


def test_oversized_element_rejected(clock):
    cache = Cache(max_size=1000, max_element_size=100, clock=clock)
    assert cache.add(b"x" * 200, "u") is False
    assert len(cache) == 0
    assert cache.size == 0


def test_size_matches_element_size(clock):
    cache = Cache(clock=clock)
    cache.add(b"payload", "request")
    assert cache.size == cache.find("request").size


def test_evicts_least_recently_used(clock):
    one = CacheElement(data=b"x" * 10, url="a", lru_time=0).size
    cache = Cache(max_size=2 * one, max_element_size=one, clock=clock)
    clock.now = 0
    cache.add(b"x" * 10, "a")
    clock.now = 1
    cache.add(b"x" * 10, "b")
    clock.now = 2
    cache.find("a")
    clock.now = 3
    cache.add(b"x" * 10, "c")
    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache
    assert cache.size <= cache.max_size


def test_evict_ties_remove_newest(clock):
    cache = Cache(clock=clock)
    cache.add(b"1", "a")
    cache.add(b"2", "b")
    assert cache.evict().url == "b"
    assert "a" in cache


def test_evict_returns_size_to_zero(clock):
    cache = Cache(clock=clock)
    cache.add(b"data", "only")
    evicted = cache.evict()
    assert evicted.data == b"data"
    assert cache.size == 0
    assert len(cache) == 0


def test_evict_empty_returns_none(clock):
    cache = Cache(clock=clock)
    assert cache.evict() is None
    assert len(cache) == 0


def test_newest_duplicate_wins(clock):
    cache = Cache(clock=clock)
    cache.add(b"old", "k")
    cache.add(b"new", "k")
    assert cache.find("k").data == b"new"


def test_find_refreshes_access_time(clock):
    cache = Cache(clock=clock)
    cache.add(b"v", "k")
    clock.now = 5.0
    assert cache.find("k").lru_time == 5.0


def test_log_callback_receives_tags(clock):
    events = []
    cache = Cache(clock=clock, log=lambda tag, message: events.append((tag, message)))
    cache.find("k")
    cache.add(b"v", "k")
    cache.find("k")
    cache.evict()
    assert [tag for tag, _ in events] == [
        "[CACHE MISS]",
        "[CACHE STORE]",
        "[CACHE HIT]",
        "[CACHE EVICT]",
    ]
    assert all(message == "k" for _, message in events)


def test_element_size_counts_overhead():
    element = CacheElement(data=b"abc", url="u", lru_time=0)
    assert element.size - ELEMENT_OVERHEAD == len(b"abc") + 1 + len("u")