from media_rec.cache import RecommendationCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_get_returns_copy_until_ttl_expires():
    clock = FakeClock()
    cache = RecommendationCache(ttl_seconds=10, max_entries=5, clock=clock)
    key = cache.make_key("u", "popular", (10, "month"))

    assert cache.get(key) is None
    cache.set(key, ["a", "b"])

    hit = cache.get(key)
    assert hit == ["a", "b"]
    hit.append("mutated")
    assert cache.get(key) == ["a", "b"]

    clock.now = 11
    assert cache.get(key) is None
    assert cache.stats()["hits"] == 2
    assert cache.stats()["misses"] == 2
    assert cache.stats()["entries"] == 0


def test_oldest_entries_evicted():
    cache = RecommendationCache(ttl_seconds=60, max_entries=2)
    for user in ("a", "b", "c"):
        cache.set(cache.make_key(user, "popular", ()), [user])

    assert cache.get(cache.make_key("a", "popular", ())) is None
    assert cache.get(cache.make_key("c", "popular", ())) == ["c"]
    assert cache.stats()["entries"] == 2


def test_invalidate_user_only_drops_that_user():
    cache = RecommendationCache()
    cache.set(cache.make_key("u", "collaborative", ()), [1])
    cache.set(cache.make_key("u", "discovery", ()), [2])
    cache.set(cache.make_key("v", "collaborative", ()), [3])

    assert cache.invalidate_user("u") == 2
    assert cache.get(cache.make_key("v", "collaborative", ())) == [3]

    cache.clear()
    assert cache.stats()["entries"] == 0
