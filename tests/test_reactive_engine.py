import unittest
from unittest import mock

from audio_sources import AudioSource, BandSample
from config import EngineConfig, ReactivityConfig, ReactivityMode
from logging_utils import get_log_level, set_log_level
from reactive_engine import ReactiveEngine

DT = 1.0 / 60.0


class TestReactiveEngine(unittest.TestCase):
    def setUp(self):
        self._level = get_log_level()
        self.events = []
        self.engine = ReactiveEngine(beat_callback=self.events.append)

    def tearDown(self):
        set_log_level(self._level)

    def test_beat_data_is_frame_coherent(self):
        frame = self.engine.process_frame(BandSample(bass=0.5, peak_bass=0.3), DT, 0.0)

        self.assertEqual(len(frame.beat.events), 1)
        self.assertAlmostEqual(frame.sample.beat_intensity_bass, 0.75)

        config = ReactivityConfig(source=AudioSource.BEAT_INTENSITY_BASS)
        self.assertAlmostEqual(self.engine.parameter_value("flash", config, DT), 0.75)

    def test_beats_feed_ripples_and_callback(self):
        frame = self.engine.process_frame(BandSample(bass=0.5, treble=0.4), DT, 0.0)
        self.assertEqual(frame.ripples.count, 2)
        self.assertEqual(sorted(e.band for e in self.events), ["bass", "treble"])

    def test_transient_trigger_follows_trigger_source(self):
        engine = ReactiveEngine(EngineConfig(trigger_source=AudioSource.BASS))
        frame = engine.process_frame(BandSample(volume=0.0, bass=0.6), DT, 0.0)
        self.assertEqual(frame.trigger_multiplier, 2.0)

        frame = engine.process_frame(BandSample(volume=0.0, bass=0.6), DT, 150.0)
        self.assertEqual(frame.trigger_multiplier, 1.0)

    def test_out_of_range_trigger_source_keeps_running(self):
        engine = ReactiveEngine(EngineConfig(trigger_source=AudioSource.BASS_STEREO))
        with self.assertLogs("beatreactor", level="WARNING") as captured:
            frame = engine.process_frame(BandSample(bass_stereo=-0.5), DT, 0.0)
        self.assertEqual(frame.trigger_multiplier, 1.0)
        self.assertTrue(any("Invalid level ignored" in r.getMessage() for r in captured.records))

    def test_time_offset_accumulates(self):
        frame = None
        for i in range(30):
            frame = self.engine.process_frame(BandSample(volume=0.8), 0.1, i * 100.0)
        self.assertGreater(frame.raw_time_offset, 0.0)
        self.assertGreater(frame.time_offset, 0.0)

    def test_metadata_bpm_reaches_consumers(self):
        with mock.patch("beat_detector.log_event"):
            self.assertTrue(self.engine.set_metadata_bpm(128))
        frame = self.engine.process_frame(BandSample(volume=0.2), DT, 0.0)
        self.assertEqual(frame.beat.estimated_bpm, 128.0)
        self.assertEqual(frame.sample.estimated_bpm, 128.0)
        self.assertEqual(self.engine.get_estimated_bpm(), 128.0)

    def test_missing_sample(self):
        frame = self.engine.process_frame(None, DT, 0.0)
        self.assertIsNone(frame.sample)
        self.assertEqual(frame.beat.events, [])
        config = ReactivityConfig(mode=ReactivityMode.SPEED, start_value=1.0, target_value=2.0)
        self.assertEqual(self.engine.parameter_value("speed", config, DT), 1.0)

    def test_record_frame_duration(self):
        metrics = self.engine.record_frame_duration(16.0)
        self.assertAlmostEqual(metrics.avg_fps, 62.5)
        self.assertEqual(metrics.quality_level, 1.0)

    def test_reset_clears_track_state(self):
        with mock.patch("beat_detector.log_event"):
            self.engine.set_metadata_bpm(128)
        self.engine.process_frame(BandSample(bass=0.5, volume=0.8), DT, 0.0)

        self.engine.reset()
        self.assertEqual(self.engine.get_estimated_bpm(), 0.0)
        self.assertIsNone(self.engine.current_sample)
        self.assertEqual(self.engine.ripples.ripples, [])
        self.assertEqual(self.engine.time_offset.time_offset, 0.0)

    def test_dispose(self):
        self.engine.record_frame_duration(16.0)
        self.engine.dispose()
        self.assertEqual(self.engine.performance.frame_count, 0)
        with self.assertRaises(RuntimeError):
            self.engine.process_frame(BandSample(), DT, 0.0)

    def test_independent_engines(self):
        other = ReactiveEngine()
        self.engine.process_frame(BandSample(bass=0.5), DT, 0.0)
        self.assertIsNone(other.current_sample)
        self.assertEqual(other.ripples.ripples, [])


if __name__ == "__main__":
    unittest.main()
