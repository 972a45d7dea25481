from app.shaderhouse.cache import ApiCache, featured_games_key, trending_games_key


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def test_get_respects_ttl():
    clock = FakeClock()
    cache = ApiCache(clock=clock)
    cache.set("k", {"v": 1}, 10)
    assert cache.get("k") == {"v": 1}
    clock.now = 11
    assert cache.get("k") is None
    assert len(cache) == 0


def test_delete_prefix_only_touches_matching_keys():
    cache = ApiCache()
    cache.set(featured_games_key(6), [1], 60)
    cache.set(trending_games_key(10, 7), [2], 60)
    cache.set("platform-settings", {}, 60)

    cache.delete_prefix("featured-games-", "trending-games-")

    assert cache.get("featured-games-6") is None
    assert cache.get("trending-games-10-7") is None
    assert cache.get("platform-settings") == {}


def test_clear_expired_counts_removed():
    clock = FakeClock()
    cache = ApiCache(clock=clock)
    cache.set("a", 1, 5)
    cache.set("b", 2, 50)
    clock.now = 10
    assert cache.clear_expired() == 1
    assert cache.get("b") == 2
