import unittest
from unittest import mock

from config import TransientTriggerConfig
from transient_trigger import RateLimiter, TransientTriggerPolicy


class TestRateLimiter(unittest.TestCase):
    def test_limit_starts_cooldown(self):
        limiter = RateLimiter(window_ms=500.0, limit=2, cooldown_ms=300.0)
        for t in (0.0, 10.0):
            self.assertTrue(limiter.allow(t))
            limiter.record(t)

        self.assertFalse(limiter.allow(20.0))
        self.assertTrue(limiter.in_cooldown(319.0))
        self.assertFalse(limiter.allow(319.0))
        self.assertTrue(limiter.allow(520.0))

    def test_window_slides(self):
        limiter = RateLimiter(window_ms=100.0, limit=1, cooldown_ms=0.0)
        limiter.record(0.0)
        self.assertTrue(limiter.allow(100.0))

    def test_reset(self):
        limiter = RateLimiter(limit=1)
        limiter.record(0.0)
        limiter.allow(1.0)
        limiter.reset()
        self.assertTrue(limiter.allow(2.0))


class TestTransientTriggerPolicy(unittest.TestCase):
    def test_pulse_is_held_then_snaps_back(self):
        policy = TransientTriggerPolicy()
        self.assertEqual(policy.update(0.3, 0.0), 2.0)
        self.assertEqual(policy.update(0.3, 50.0), 2.0)
        self.assertEqual(policy.update(0.3, 100.0), 1.0)
        self.assertEqual(policy.get_multiplier(), 1.0)

    def test_requires_fast_rise(self):
        policy = TransientTriggerPolicy()
        policy.update(0.2, 0.0)
        self.assertEqual(policy.update(0.3, 16.0), 1.0)

    def test_requires_threshold(self):
        policy = TransientTriggerPolicy()
        self.assertEqual(policy.update(0.24, 0.0), 1.0)

    def test_no_retrigger_while_active(self):
        policy = TransientTriggerPolicy()
        policy.update(0.5, 0.0)
        policy.update(0.0, 30.0)
        policy.update(0.5, 60.0)
        self.assertEqual(policy.update(0.0, 100.0), 1.0)

    def test_rate_limit_and_cooldown(self):
        policy = TransientTriggerPolicy()
        fired = []
        for t in range(0, 1000, 50):
            level = 0.5 if t % 100 == 0 else 0.0
            policy.update(level, float(t))
            if policy.is_active and policy._started_ms == t:
                fired.append(t)

        self.assertEqual(fired, [0, 100, 200, 300, 900])

    def test_invalid_level_is_ignored(self):
        policy = TransientTriggerPolicy()
        policy.update(0.1, 0.0)
        with mock.patch("transient_trigger.log_event") as log_event_mock:
            for level in (1.5, -0.1, float("nan"), None):
                self.assertEqual(policy.update(level, 10.0), 1.0)
        self.assertEqual(log_event_mock.call_count, 4)
        self.assertEqual(policy.previous_level, 0.1)

    def test_invalid_level_warning_reaches_log(self):
        policy = TransientTriggerPolicy()
        with self.assertLogs("beatreactor", level="WARNING") as captured:
            self.assertEqual(policy.update(1.5, 0.0), 1.0)
            self.assertEqual(policy.update(-0.4, 10.0), 1.0)
        self.assertEqual(len(captured.records), 2)
        self.assertIn("input_level=1.5000", captured.records[0].getMessage())

    def test_firing_is_logged(self):
        policy = TransientTriggerPolicy()
        with self.assertLogs("beatreactor", level="DEBUG") as captured:
            self.assertEqual(policy.update(0.8, 0.0), 2.0)
        self.assertEqual(captured.records[0].getMessage(),
                         "Transient fired | input_level=0.800 change=0.800")

    def test_custom_multiplier(self):
        policy = TransientTriggerPolicy(TransientTriggerConfig(active_multiplier=1.5, duration_ms=40.0))
        self.assertEqual(policy.update(0.6, 0.0), 1.5)
        self.assertEqual(policy.update(0.6, 40.0), 1.0)

    def test_reset(self):
        policy = TransientTriggerPolicy()
        policy.update(0.5, 0.0)
        policy.reset()
        self.assertEqual(policy.get_multiplier(), 1.0)
        self.assertFalse(policy.is_active)
        self.assertEqual(policy.previous_level, 0.0)


if __name__ == "__main__":
    unittest.main()
