import unittest

from freshwallet.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    """Monotonic clock that only moves when someone sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def max_in_window(timestamps, window):
    return max(
        sum(1 for other in timestamps if 0 <= other - start < window)
        for start in timestamps
    )


class TestSlidingWindowRateLimiter(unittest.IsolatedAsyncioTestCase):

    async def test_per_second_ceiling(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(3, 100, clock=clock, sleep=clock.sleep)

        stamps = [await limiter.acquire() for _ in range(10)]

        self.assertEqual(stamps, [0, 0, 0, 1, 1, 1, 2, 2, 2, 3])
        self.assertLessEqual(max_in_window(stamps, 1.0), 3)
        self.assertEqual(clock.sleeps, [1.0, 1.0, 1.0])

    async def test_per_minute_ceiling(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(10, 12, clock=clock, sleep=clock.sleep)

        stamps = [await limiter.acquire() for _ in range(13)]

        # 10 at t=0, 2 more after the per-second wait, then the minute budget is spent
        self.assertEqual(stamps[10], 1.0)
        self.assertEqual(stamps[12], 60.0)
        self.assertLessEqual(max_in_window(stamps, 1.0), 10)
        self.assertLessEqual(max_in_window(stamps, 60.0), 12)

    async def test_both_windows_hold_over_long_run(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(5, 20, clock=clock, sleep=clock.sleep)

        stamps = []
        for i in range(60):
            stamps.append(await limiter.acquire())
            # Irregular gaps between callers
            clock.now += 0.05 * (i % 4)

        self.assertLessEqual(max_in_window(stamps, 1.0), 5)
        self.assertLessEqual(max_in_window(stamps, 60.0), 20)
        self.assertEqual(stamps, sorted(stamps))

    async def test_no_wait_under_budget(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(20, 500, clock=clock, sleep=clock.sleep)

        for _ in range(20):
            await limiter.acquire()

        self.assertEqual(clock.sleeps, [])
        stats = limiter.get_stats()
        self.assertEqual(stats['dispatches'], 20)
        self.assertEqual(stats['in_last_second'], 20)
        self.assertEqual(stats['waits'], 0)

    async def test_old_entries_are_pruned(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(2, 100, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        await limiter.acquire()
        clock.now = 5.0

        self.assertEqual(await limiter.acquire(), 5.0)
        self.assertEqual(clock.sleeps, [])
        self.assertEqual(limiter.get_stats()['in_last_minute'], 3)

    def test_rejects_zero_limits(self):
        with self.assertRaises(ValueError):
            SlidingWindowRateLimiter(0, 10)
        with self.assertRaises(ValueError):
            SlidingWindowRateLimiter(10, 0)


if __name__ == '__main__':
    unittest.main()
