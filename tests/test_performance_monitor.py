import unittest
from unittest import mock

from config import PerformanceConfig
from performance_monitor import PerformanceMonitor


def _feed(monitor, duration_ms, frames, on_quality_change=None):
    metrics = None
    for _ in range(frames):
        metrics = monitor.record_frame(duration_ms, on_quality_change)
    return metrics


class TestQuality(unittest.TestCase):
    def test_full_window_at_half_speed_drops_one_step(self):
        monitor = PerformanceMonitor()
        target_frame_ms = 1000.0 / monitor.target_fps

        _feed(monitor, target_frame_ms * 2.0, 29)
        self.assertEqual(monitor.get_quality_level(), 1.0)

        metrics = _feed(monitor, target_frame_ms * 2.0, 1)
        self.assertEqual(monitor.get_quality_level(), 0.9)
        self.assertAlmostEqual(metrics.avg_fps, 15.0, places=3)

    def test_recovery_jumps_straight_to_full_quality(self):
        monitor = PerformanceMonitor()
        changes = []
        _feed(monitor, 100.0, 40, changes.append)
        self.assertLess(monitor.get_quality_level(), 1.0)

        _feed(monitor, 10.0, 30, changes.append)
        self.assertEqual(monitor.get_quality_level(), 1.0)

        for before, after in zip(changes, changes[1:]):
            if after > before:
                self.assertEqual(after, 1.0)
        self.assertEqual(changes[-1], 1.0)

    def test_quality_floor(self):
        monitor = PerformanceMonitor()
        _feed(monitor, 500.0, 100)
        self.assertEqual(monitor.get_quality_level(), 0.5)

    def test_early_boost_while_window_fills(self):
        monitor = PerformanceMonitor(PerformanceConfig(initial_quality=0.6))
        _feed(monitor, 10.0, 9)
        self.assertEqual(monitor.get_quality_level(), 0.6)
        _feed(monitor, 10.0, 1)
        self.assertEqual(monitor.get_quality_level(), 1.0)


class TestTargetFps(unittest.TestCase):
    def test_upgrade_after_sustained_good_frames(self):
        monitor = PerformanceMonitor()
        tiers = []
        monitor.set_target_fps_callback(tiers.append)

        _feed(monitor, 10.0, 58)
        self.assertEqual(monitor.target_fps, 30.0)
        _feed(monitor, 10.0, 1)
        self.assertEqual(monitor.target_fps, 60.0)
        self.assertEqual(tiers, [60.0])

    def test_downgrade_after_sustained_bad_frames(self):
        monitor = PerformanceMonitor(PerformanceConfig(target_fps=60.0))
        _feed(monitor, 25.0, 43)
        self.assertEqual(monitor.target_fps, 60.0)
        _feed(monitor, 25.0, 1)
        self.assertEqual(monitor.target_fps, 30.0)

    def test_middle_band_winds_counters_down(self):
        monitor = PerformanceMonitor()
        monitor.consecutive_good = 5
        monitor.consecutive_bad = 1
        monitor._adjust_target_fps(31.0)
        self.assertEqual(monitor.consecutive_good, 4)
        self.assertEqual(monitor.consecutive_bad, 0)

    def test_adaptive_fps_can_be_disabled(self):
        monitor = PerformanceMonitor(PerformanceConfig(enable_adaptive_fps=False))
        _feed(monitor, 10.0, 100)
        self.assertEqual(monitor.target_fps, 30.0)


class TestMonitorState(unittest.TestCase):
    def test_disabled_returns_none(self):
        monitor = PerformanceMonitor(PerformanceConfig(enabled=False))
        self.assertIsNone(monitor.record_frame(16.0))

    def test_invalid_duration_is_ignored(self):
        monitor = PerformanceMonitor()
        with mock.patch("performance_monitor.log_event") as log_event_mock:
            for duration in (0.0, -3.0, float("nan"), float("inf"), None):
                self.assertIsNone(monitor.record_frame(duration))
        self.assertEqual(log_event_mock.call_count, 5)
        self.assertEqual(monitor.frame_count, 0)

    def test_running_average(self):
        monitor = PerformanceMonitor()
        _feed(monitor, 20.0, 30)
        _feed(monitor, 10.0, 15)
        self.assertAlmostEqual(monitor.get_average_fps(), 1000.0 / 15.0, places=3)

    def test_resize_config(self):
        monitor = PerformanceMonitor()
        resize = monitor.get_resize_config()
        self.assertEqual(resize.max_resolution_width, 2560)
        self.assertEqual(resize.max_resolution_height, 1440)
        self.assertEqual(resize.max_dpr, 2.0)
        self.assertEqual(resize.quality_level, 1.0)

    def test_reset_returns_to_min_tier(self):
        monitor = PerformanceMonitor()
        _feed(monitor, 10.0, 59)
        self.assertEqual(monitor.target_fps, 60.0)

        monitor.reset()
        self.assertEqual(monitor.target_fps, 30.0)
        self.assertEqual(monitor.frame_count, 0)
        self.assertEqual(monitor.get_average_fps(), 0.0)
        self.assertEqual(monitor.consecutive_good, 0)


if __name__ == "__main__":
    unittest.main()
