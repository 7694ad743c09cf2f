import unittest
import tempfile
import os
import threading

from storage.cache import Cache, ResultCache


class TestCacheConcurrency(unittest.TestCase):
    def test_concurrent_set_get_no_corruption(self):
        tmp = tempfile.NamedTemporaryFile(delete=False)
        path = tmp.name
        tmp.close()
        cache = Cache(path)
        try:
            num_threads = 8
            keys_per_thread = 100
            errors = []

            def worker(thread_idx):
                try:
                    for i in range(keys_per_thread):
                        key = f"t{thread_idx}_k{i}"
                        cache.set(key, [{'thread': thread_idx, 'i': i}])
                        entry = cache.get(key)
                        if entry is None or entry['payload'][0]['i'] != i:
                            errors.append((thread_idx, i))
                except Exception as ex:
                    errors.append(('exc', thread_idx, str(ex)))

            threads = [threading.Thread(target=worker, args=(ti,)) for ti in range(num_threads)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            self.assertEqual(len(errors), 0, f"Errors occurred in threads: {errors}")
            self.assertEqual(cache.stats()['count'], num_threads * keys_per_thread)
        finally:
            cache.close()
            try:
                os.remove(path)
            except OSError:
                pass

    def test_same_key_writers_leave_one_whole_payload(self):
        cache = Cache()
        results = ResultCache(cache)
        payloads = [[{'id': f"w{w}-{i}"} for i in range(50)] for w in range(6)]

        threads = [threading.Thread(target=results.put_commits, args=('05.03.2026', p)) for p in payloads]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stored = results.get_commits('05.03.2026')
        self.assertIn(stored, payloads)
        cache.close()


if __name__ == '__main__':
    unittest.main()
