from django.test import SimpleTestCase

from roadmatch.ratelimit import RateLimiter, backoff_delay

from .helpers import FakeClock, RecordingSleep


class BackoffDelayTests(SimpleTestCase):
    def test_delay_doubles_per_retry(self):
        self.assertEqual([backoff_delay(attempt, 1.0) for attempt in (1, 2, 3)], [1.0, 2.0, 4.0])

    def test_custom_multiplier(self):
        self.assertEqual(backoff_delay(3, 0.5, multiplier=3.0), 4.5)

    def test_attempt_must_be_positive(self):
        with self.assertRaises(ValueError):
            backoff_delay(0, 1.0)


class RateLimiterTests(SimpleTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.sleep = RecordingSleep(self.clock)
        self.limiter = RateLimiter(2, 10.0, clock=self.clock, sleep=self.sleep)

    def test_blocks_once_window_is_full(self):
        self.assertTrue(self.limiter.is_allowed("osrm"))
        self.assertTrue(self.limiter.is_allowed("osrm"))
        self.assertFalse(self.limiter.is_allowed("osrm"))

    def test_window_slides(self):
        self.limiter.is_allowed("osrm")
        self.clock.advance(4.0)
        self.limiter.is_allowed("osrm")

        self.clock.advance(6.0)

        self.assertTrue(self.limiter.is_allowed("osrm"))
        self.assertFalse(self.limiter.is_allowed("osrm"))

    def test_keys_are_independent(self):
        self.limiter.is_allowed("osrm")
        self.limiter.is_allowed("osrm")
        self.assertTrue(self.limiter.is_allowed("mapbox"))

    def test_wait_until_allowed_sleeps_until_oldest_request_expires(self):
        self.limiter.is_allowed("osrm")
        self.clock.advance(3.0)
        self.limiter.is_allowed("osrm")

        waited = self.limiter.wait_until_allowed("osrm")

        self.assertEqual(waited, 7.0)
        self.assertEqual(self.sleep.delays, [7.0])
        self.assertEqual(self.limiter.usage("osrm")["current"], 2)

    def test_wait_is_free_under_the_limit(self):
        self.assertEqual(self.limiter.wait_until_allowed("osrm"), 0.0)
        self.assertEqual(self.sleep.delays, [])

    def test_usage_and_reset(self):
        self.limiter.is_allowed("osrm")
        self.clock.advance(2.5)

        self.assertEqual(self.limiter.usage("osrm"), {"current": 1, "limit": 2, "reset_in": 7.5})

        self.limiter.reset("osrm")
        self.assertEqual(self.limiter.time_until_reset("osrm"), 0.0)
        self.assertEqual(self.limiter.usage("osrm")["current"], 0)
