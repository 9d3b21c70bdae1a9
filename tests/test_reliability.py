import os
import tempfile
import unittest
from unittest import mock

from dealwatch.reliability import ProcessLock, RateLimiter, retry_with_backoff


class TestRetryWithBackoff(unittest.TestCase):
    def test_retries_then_succeeds(self):
        attempts = []

        @retry_with_backoff(max_retries=3, base_delay=0.0)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("reset")
            return "ok"

        with mock.patch("dealwatch.reliability.time.sleep") as sleep:
            self.assertEqual(flaky(), "ok")
        self.assertEqual(len(attempts), 3)
        self.assertEqual(sleep.call_count, 2)

    def test_only_listed_errors_are_retried(self):
        attempts = []

        @retry_with_backoff(max_retries=3, retry_on=(ConnectionError,))
        def broken():
            attempts.append(1)
            raise ValueError("bad input")

        with mock.patch("dealwatch.reliability.time.sleep"):
            with self.assertRaises(ValueError):
                broken()
        self.assertEqual(len(attempts), 1)

    def test_gives_up_after_max_retries(self):
        @retry_with_backoff(max_retries=2, base_delay=0.0)
        def down():
            raise ConnectionError("down")

        with mock.patch("dealwatch.reliability.time.sleep"):
            with self.assertRaises(ConnectionError):
                down()


class TestRateLimiter(unittest.TestCase):
    def test_waits_once_window_is_full(self):
        waits = []
        limiter = RateLimiter(max_calls=2, time_window=60, sleep=waits.append)
        limiter.wait_if_needed()
        limiter.wait_if_needed()
        self.assertEqual(waits, [])
        limiter.wait_if_needed()
        self.assertEqual(len(waits), 1)
        self.assertGreater(waits[0], 0)


class TestProcessLock(unittest.TestCase):
    def test_second_holder_is_refused(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "ingest.lock")
            first = ProcessLock(path)
            second = ProcessLock(path)
            self.assertTrue(first.acquire())
            try:
                self.assertFalse(second.acquire())
            finally:
                first.release()
            with second as acquired:
                self.assertTrue(acquired)


if __name__ == "__main__":
    unittest.main()
