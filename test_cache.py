import unittest

from freshwallet.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestTTLCache(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cache = TTLCache({'ttl_seconds': 60}, clock=self.clock)

    def test_set_get_has_delete(self):
        self.cache.set('a', 1)

        self.assertTrue(self.cache.has('a'))
        self.assertEqual(self.cache.get('a'), 1)
        self.assertTrue(self.cache.delete('a'))
        self.assertFalse(self.cache.delete('a'))
        self.assertIsNone(self.cache.get('a'))

    def test_entry_expires_lazily(self):
        self.cache.set('a', 1, ttl=10)
        self.clock.now += 9.9
        self.assertEqual(self.cache.get('a'), 1)

        self.clock.now += 0.1
        self.assertFalse(self.cache.has('a'))
        self.assertIsNone(self.cache.get('a'))
        self.assertEqual(self.cache.get_stats()['expirations'], 1)

    def test_cleanup_expired_sweeps_everything_stale(self):
        self.cache.set('short', 1, ttl=5)
        self.cache.set('long', 2, ttl=500)
        self.clock.now += 10

        self.assertEqual(self.cache.cleanup_expired(), 1)
        self.assertEqual(self.cache.keys(), ['long'])

    def test_get_ttl(self):
        self.cache.set('a', 1, ttl=30)
        self.clock.now += 10
        self.assertAlmostEqual(self.cache.get_ttl('a'), 20)
        self.assertIsNone(self.cache.get_ttl('missing'))

    async def test_get_or_set_computes_once_per_miss(self):
        calls = []

        async def factory():
            calls.append(1)
            return {'tok': ['0xAAA']}

        first = await self.cache.get_or_set('k', factory)
        second = await self.cache.get_or_set('k', factory)

        self.assertEqual(first, {'tok': ['0xAAA']})
        self.assertIs(second, first)
        self.assertEqual(len(calls), 1)
        self.assertEqual(self.cache.get('k'), first)

    async def test_get_or_set_recomputes_after_expiry(self):
        calls = []

        def factory():
            calls.append(1)
            return len(calls)

        self.assertEqual(await self.cache.get_or_set('k', factory, ttl=5), 1)
        self.clock.now += 6
        self.assertEqual(await self.cache.get_or_set('k', factory, ttl=5), 2)

    async def test_get_or_set_does_not_store_failures(self):
        async def failing():
            raise RuntimeError("upstream down")

        with self.assertRaises(RuntimeError):
            await self.cache.get_or_set('k', failing)
        self.assertFalse(self.cache.has('k'))

    async def test_get_or_set_does_not_store_none(self):
        async def nothing():
            return None

        self.assertIsNone(await self.cache.get_or_set('k', nothing))
        self.assertFalse(self.cache.has('k'))

    def test_lru_eviction_when_full(self):
        cache = TTLCache({'ttl_seconds': 60, 'max_size': 2}, clock=self.clock)
        cache.set('a', 1)
        self.clock.now += 1
        cache.set('b', 2)
        self.clock.now += 1
        cache.get('a')
        self.clock.now += 1
        cache.set('c', 3)

        self.assertTrue(cache.has('a'))
        self.assertFalse(cache.has('b'))
        self.assertEqual(cache.get_stats()['evictions'], 1)

    def test_create_key(self):
        self.assertEqual(TTLCache.create_key('tokens', 'a,b', 'ethereum'), 'tokens:a,b:ethereum')

    def test_hit_rate(self):
        self.cache.set('a', 1)
        self.cache.get('a')
        self.cache.get('b')
        stats = self.cache.get_stats()
        self.assertEqual(stats['hits'], 1)
        self.assertEqual(stats['misses'], 1)
        self.assertEqual(stats['hit_rate_pct'], 50)


if __name__ == '__main__':
    unittest.main()
