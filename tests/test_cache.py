import sys
import time
import unittest
from unittest import mock

from lesson_ledger.cache import CacheManager, MemoryCacheBackend, RedisCacheBackend, cache, cache_key


class CacheTests(unittest.TestCase):
    def setUp(self):
        cache.invalidate_prefix('lesson_ledger')
        cache.invalidate_prefix('lesson_payment_stats')

    def test_cache_hit_miss(self):
        key = cache_key('lesson_ledger', 7)
        self.assertIsNone(cache.get_cached(key))
        cache.set_cached(key, {'ok': True}, ttl=5)
        self.assertEqual(cache.get_cached(key), {'ok': True})

    def test_cache_invalidate_prefix_is_scoped(self):
        cache.set_cached(cache_key('lesson_payment_stats', '7:2026-10-19'), {'a': 1}, ttl=5)
        cache.set_cached(cache_key('lesson_payment_stats', '7:2026-10-20'), {'b': 2}, ttl=5)
        cache.set_cached(cache_key('lesson_payment_stats', '8:2026-10-19'), {'c': 3}, ttl=5)
        cache.invalidate_prefix(cache_key('lesson_payment_stats', '7:'))
        self.assertIsNone(cache.get_cached(cache_key('lesson_payment_stats', '7:2026-10-19')))
        self.assertIsNone(cache.get_cached(cache_key('lesson_payment_stats', '7:2026-10-20')))
        self.assertEqual(cache.get_cached(cache_key('lesson_payment_stats', '8:2026-10-19')), {'c': 3})

    def test_cache_invalidate_single_key(self):
        key = cache_key('lesson_ledger', 9)
        cache.set_cached(key, {'cached': True}, ttl=5)
        cache.invalidate(key)
        self.assertIsNone(cache.get_cached(key))

    def test_bypass_cache_flag_parsing(self):
        for value in (True, 'true', '1', 'yes', 'on'):
            self.assertTrue(cache.bypass_cache(value))
        for value in (None, False, 'false', '0', ''):
            self.assertFalse(cache.bypass_cache(value))

    def test_cache_key_without_identifier(self):
        self.assertEqual(cache_key('lesson_ledger'), 'lesson_ledger')
        self.assertEqual(cache_key('lesson_ledger', 3), 'lesson_ledger:3')

    def test_set_skipped_when_scope_bumped_after_read(self):
        manager = CacheManager(backend=MemoryCacheBackend())
        generation = manager.generation('lesson:3')
        manager.bump_generation('lesson:3')
        with self.assertLogs('lesson_ledger.cache', level='INFO') as captured:
            stored = manager.set_cached('lesson_ledger:3', {'v': 'old'}, ttl=5, scope='lesson:3', generation=generation)
        self.assertFalse(stored)
        self.assertIsNone(manager.get_cached('lesson_ledger:3'))
        self.assertIn('cache_stale_skip', captured.output[0])

        current = manager.generation('lesson:3')
        self.assertTrue(manager.set_cached('lesson_ledger:3', {'v': 'new'}, ttl=5, scope='lesson:3', generation=current))
        self.assertEqual(manager.get_cached('lesson_ledger:3'), {'v': 'new'})

    def test_bump_is_scoped_to_one_lesson(self):
        manager = CacheManager(backend=MemoryCacheBackend())
        generation = manager.generation('lesson:4')
        manager.bump_generation('lesson:5')
        self.assertTrue(manager.set_cached('lesson_ledger:4', {'v': 4}, ttl=5, scope='lesson:4', generation=generation))

    def test_bump_all_invalidates_every_captured_generation(self):
        manager = CacheManager(backend=MemoryCacheBackend())
        manager.bump_generation('lesson:6')
        captured = {scope: manager.generation(scope) for scope in ('lesson:6', 'lesson:7')}
        manager.bump_all_generations()
        for scope, generation in captured.items():
            self.assertFalse(manager.set_cached(f'lesson_ledger:{scope}', {}, ttl=5, scope=scope, generation=generation))
        self.assertGreater(manager.generation('lesson:6'), captured['lesson:6'])

    def test_memory_backend_expires_entries(self):
        backend = MemoryCacheBackend()
        with mock.patch('lesson_ledger.cache.time.monotonic', return_value=100.0):
            backend.set('lesson_ledger:1', {'v': 1}, ttl=5)
        with mock.patch('lesson_ledger.cache.time.monotonic', return_value=104.0):
            self.assertEqual(backend.get('lesson_ledger:1'), {'v': 1})
        with mock.patch('lesson_ledger.cache.time.monotonic', return_value=105.0):
            self.assertIsNone(backend.get('lesson_ledger:1'))


class RedisBackendTests(unittest.TestCase):
    def setUp(self):
        self._orig_redis = sys.modules.get('redis')

        class FakeRedisClient:
            def __init__(self):
                self._store = {}

            def setex(self, key, ttl, value):
                self._store[key] = (time.time() + ttl, value)

            def get(self, key):
                item = self._store.get(key)
                if not item:
                    return None
                expires_at, value = item
                if time.time() >= expires_at:
                    self._store.pop(key, None)
                    return None
                return value

            def delete(self, *keys):
                for key in keys:
                    self._store.pop(key, None)

            def scan(self, cursor=0, match='*', count=100):
                prefix = match[:-1] if match.endswith('*') else match
                keys = [key for key in self._store.keys() if key.startswith(prefix)]
                return 0, keys

        class FakeRedisModule:
            class Redis:
                @staticmethod
                def from_url(url, decode_responses=True):
                    return FakeRedisClient()

        sys.modules['redis'] = FakeRedisModule()

    def tearDown(self):
        if self._orig_redis is None:
            sys.modules.pop('redis', None)
        else:
            sys.modules['redis'] = self._orig_redis

    def test_redis_backend_roundtrip(self):
        manager = CacheManager(backend=RedisCacheBackend('redis://localhost:6379/0'))
        manager.set_cached('lesson_ledger:1', {'sessions': [{'id': 1, 'paid_minutes': 40}]}, ttl=5)
        self.assertEqual(manager.get_cached('lesson_ledger:1'), {'sessions': [{'id': 1, 'paid_minutes': 40}]})

    def test_redis_backend_prefix_delete(self):
        manager = CacheManager(backend=RedisCacheBackend('redis://localhost:6379/0'))
        manager.set_cached('lesson_payment_stats:1:2026-10-19', {'paid_minutes': 80}, ttl=5)
        manager.set_cached('lesson_payment_stats:2:2026-10-19', {'paid_minutes': 40}, ttl=5)
        manager.invalidate_prefix('lesson_payment_stats:1:')
        self.assertIsNone(manager.get_cached('lesson_payment_stats:1:2026-10-19'))
        self.assertEqual(manager.get_cached('lesson_payment_stats:2:2026-10-19'), {'paid_minutes': 40})


if __name__ == '__main__':
    unittest.main()
