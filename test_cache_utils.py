import threading
import time
import unittest

from cache_utils import DataCache, RequestBatcher, cached_call, debounce, throttle


class DataCacheTest(unittest.TestCase):
    def test_get_set_and_expiry(self):
        cache = DataCache(default_ttl=60)
        cache.set('analytics', {'total': 3})
        self.assertEqual(cache.get('analytics'), {'total': 3})
        cache.set('short', 'x', expires_in=0.01)
        time.sleep(0.05)
        self.assertIsNone(cache.get('short'))
        self.assertFalse(cache.has('short'))
        self.assertTrue(cache.has('analytics'))

    def test_clear_by_pattern(self):
        cache = DataCache()
        cache.set('shop.db::storage', 1)
        cache.set('shop.db::analytics', 2)
        cache.set('other.db::storage', 3)
        self.assertEqual(cache.clear('shop.db::'), 2)
        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.clear(), 1)
        self.assertEqual(len(cache), 0)

    def test_invalidate(self):
        cache = DataCache()
        cache.set('k', 1)
        cache.invalidate('k')
        self.assertIsNone(cache.get('k'))


class RequestBatcherTest(unittest.TestCase):
    def test_concurrent_callers_share_one_fetch(self):
        batcher = RequestBatcher()
        release = threading.Event()
        calls = []
        results = []

        def fetcher():
            calls.append(1)
            release.wait(2)
            return 'report'

        def worker():
            results.append(batcher.batch('storage', fetcher))

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        time.sleep(0.1)
        self.assertEqual(batcher.in_flight(), 1)
        release.set()
        for t in threads:
            t.join(2)
        self.assertEqual(len(calls), 1)
        self.assertEqual(results, ['report'] * 3)
        self.assertEqual(batcher.in_flight(), 0)

    def test_errors_reach_every_waiter(self):
        batcher = RequestBatcher()

        def broken():
            raise RuntimeError('db down')

        with self.assertRaises(RuntimeError):
            batcher.batch('k', broken)
        self.assertEqual(batcher.in_flight(), 0)

    def test_cached_call_only_fetches_once(self):
        cache = DataCache()
        calls = []

        def fetcher():
            calls.append(1)
            return {'ok': True}

        self.assertEqual(cached_call(cache, 'k', fetcher), {'ok': True})
        self.assertEqual(cached_call(cache, 'k', fetcher, batcher=RequestBatcher()), {'ok': True})
        self.assertEqual(len(calls), 1)


class RateLimitDecoratorTest(unittest.TestCase):
    def test_debounce_runs_last_call_only(self):
        seen = []
        done = threading.Event()

        @debounce(0.05)
        def record(value):
            seen.append(value)
            done.set()

        record(1)
        record(2)
        record(3)
        self.assertTrue(done.wait(1))
        time.sleep(0.1)
        self.assertEqual(seen, [3])

    def test_debounce_cancel(self):
        seen = []

        @debounce(0.05)
        def record(value):
            seen.append(value)

        record(1)
        record.cancel()
        time.sleep(0.1)
        self.assertEqual(seen, [])

    def test_throttle_drops_calls_inside_window(self):
        @throttle(10)
        def ping():
            return 'pong'

        self.assertEqual(ping(), 'pong')
        self.assertIsNone(ping())


if __name__ == '__main__':
    unittest.main()
