import unittest
from unittest import mock

import numpy as np

from audio_sources import AudioSource, BandSample
from config import TimeOffsetConfig
from time_offset import TimeOffsetManager


def _volume(level):
    return BandSample(volume=level)


class TestTimeOffsetManager(unittest.TestCase):
    def _build_offset(self, manager, frames=10, level=0.5, dt=0.1):
        for _ in range(frames):
            manager.update(_volume(level), dt)

    def test_quiet_signal_does_not_accumulate(self):
        manager = TimeOffsetManager()
        for _ in range(20):
            manager.update(_volume(0.1), 0.1)
        self.assertEqual(manager.time_offset, 0.0)

    def test_hysteresis_keeps_accumulating_once_active(self):
        manager = TimeOffsetManager()
        self._build_offset(manager)
        self.assertGreater(manager.time_offset, 0.01)

        before = manager.time_offset
        manager.update(_volume(0.1), 0.1)
        self.assertGreater(manager.time_offset, before)

        before = manager.time_offset
        manager.update(_volume(0.05), 0.1)
        self.assertLess(manager.time_offset, before)

    def test_offset_is_clamped_to_max(self):
        manager = TimeOffsetManager()
        for _ in range(20):
            manager.update(_volume(1.0), 1.0)
        self.assertAlmostEqual(manager.time_offset, 5.0)

    def test_disabled_flag_forces_monotonic_decay(self):
        manager = TimeOffsetManager()
        self._build_offset(manager, frames=40, level=1.0, dt=0.1)
        manager.set_loudness_animation_enabled(False)

        rng = np.random.default_rng(11)
        previous = manager.time_offset
        for level in rng.uniform(0.0, 1.0, 400):
            manager.update(_volume(float(level)), 0.1)
            self.assertLessEqual(manager.time_offset, previous)
            self.assertGreaterEqual(manager.time_offset, 0.0)
            previous = manager.time_offset
        self.assertLess(manager.time_offset, 1e-3)

    def test_disabled_in_config(self):
        manager = TimeOffsetManager(TimeOffsetConfig(enabled=False))
        manager.update(_volume(1.0), 0.1)
        self.assertEqual(manager.time_offset, 0.0)

    def test_missing_sample_decays(self):
        manager = TimeOffsetManager()
        self._build_offset(manager)
        before = manager.time_offset
        manager.update(None, 0.1)
        self.assertLess(manager.time_offset, before)

    def test_invalid_delta_time_skips_frame(self):
        manager = TimeOffsetManager()
        self._build_offset(manager)
        before = (manager.time_offset, manager.get_smoothed_offset())

        with mock.patch("time_offset.log_event") as log_event_mock:
            for dt in (0.0, -0.1, float("nan"), None):
                manager.update(_volume(1.0), dt)

        self.assertEqual(log_event_mock.call_count, 4)
        self.assertEqual((manager.time_offset, manager.get_smoothed_offset()), before)

    def test_smoothed_offset_follows_raw(self):
        manager = TimeOffsetManager()
        self._build_offset(manager)
        self.assertGreater(manager.get_smoothed_offset(), 0.0)
        self.assertLessEqual(manager.get_smoothed_offset(), manager.time_offset + 1e-12)

    def test_easing_factor_uses_curve(self):
        manager = TimeOffsetManager()
        self.assertAlmostEqual(manager.get_easing_factor(1.0), 1.0, delta=1e-3)
        self.assertLess(manager.get_easing_factor(0.5), 0.5)

    def test_configurable_source(self):
        manager = TimeOffsetManager(TimeOffsetConfig(source=AudioSource.BASS))
        manager.update(BandSample(volume=1.0, bass=0.0), 0.1)
        self.assertEqual(manager.time_offset, 0.0)
        manager.update(BandSample(volume=0.0, bass=1.0), 0.1)
        self.assertGreater(manager.time_offset, 0.0)

    def test_reset(self):
        manager = TimeOffsetManager()
        self._build_offset(manager)
        manager.reset()
        self.assertEqual(manager.time_offset, 0.0)
        self.assertEqual(manager.get_smoothed_offset(), 0.0)


if __name__ == "__main__":
    unittest.main()
