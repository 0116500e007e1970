"""Integration tests for the session controller."""

import shutil
import tempfile
import unittest
import sys
import os

import numpy as np

# Add project and test directories to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from detection_counter.config_manager import ConfigManager
from detection_counter.models.classification import ClassificationResult, Mode
from detection_counter.models.config import SystemConfig
from detection_counter.services.error_handler import (
    ClassifierInferenceError, ClassifierLoadError, ClassifierNotReadyError,
    ImageUnavailableError, SessionModeError
)
from detection_counter.services.frame_capture import StaticImageSource
from detection_counter.session_controller import SessionController

from scripted_classifier import NEGATIVE, POSITIVE, ScriptedClassifier

FRAME = np.zeros((48, 64, 3), dtype=np.uint8)


class SessionTestCase(unittest.TestCase):
    """Session with a loop interval long enough that tests drive ticks by hand."""

    initial_mode = "streaming"

    def setUp(self):
        """Set up test fixtures."""
        self.config = SystemConfig(sampling_interval_ms=3600 * 1000,
                                   initial_mode=self.initial_mode)
        self.classifier = ScriptedClassifier()
        self.source = StaticImageSource(FRAME)
        self.session = SessionController(self.classifier, self.source, config=self.config)

    def tearDown(self):
        """Clean up test fixtures."""
        self.classifier.release.set()
        self.session.teardown()

    def tick(self):
        """Run one streaming tick and wait for its result to be applied."""
        future = self.session.sampler.tick(self.session._stream_handle)
        if future is not None:
            future.result(timeout=5)
        return future


class TestStreamingSession(SessionTestCase):
    """Streaming-mode behaviour."""

    def test_start_begins_streaming(self):
        self.assertTrue(self.session.start())
        snapshot = self.session.get_snapshot()
        self.assertTrue(snapshot.model_ready)
        self.assertEqual(snapshot.mode, Mode.STREAMING)
        self.assertIsNotNone(self.session._stream_handle)

    def test_initial_snapshot(self):
        snapshot = self.session.get_snapshot()
        self.assertFalse(snapshot.model_ready)
        self.assertEqual(snapshot.count, 0)
        self.assertIsNone(snapshot.last_label)
        self.assertEqual(snapshot.display_label, "Predicting...")
        self.assertFalse(snapshot.processing)

    def test_scenario_a(self):
        self.classifier.outputs = [
            [("weapon", 0.9)], [("weapon", 0.95)], [("none", 0.1)], [("weapon", 0.8)]
        ]
        self.session.start()

        counts = []
        for _ in range(4):
            self.tick()
            counts.append(self.session.get_snapshot().count)

        self.assertEqual(counts, [1, 1, 1, 2])
        self.assertEqual(self.session.get_snapshot().display_label, "weapon (80.0%)")

    def test_scenario_c_failure_is_skipped(self):
        self.classifier.outputs = [
            POSITIVE, POSITIVE, ClassifierInferenceError("inference failed"), POSITIVE, POSITIVE
        ]
        self.session.start()

        for _ in range(5):
            self.tick()

        self.assertEqual(self.session.get_snapshot().count, 1)
        self.assertEqual(self.classifier.calls, 5)
        errors = self.session.error_handler.get_error_stats()
        self.assertEqual(errors["component_error_counts"]["classifier"], 1)

    def test_failure_leaves_state_untouched(self):
        self.classifier.outputs = [POSITIVE, ClassifierInferenceError("boom")]
        self.session.start()

        self.tick()
        before = self.session.aggregator.snapshot_state()
        self.tick()
        after = self.session.aggregator.snapshot_state()

        self.assertEqual(before, after)

    def test_scenario_d_mode_toggle_clears_armed(self):
        self.classifier.outputs = [POSITIVE, POSITIVE]
        self.session.start()

        self.tick()
        self.assertTrue(self.session.aggregator.state.armed)

        self.assertTrue(self.session.set_mode(Mode.SINGLE_SHOT))
        self.assertFalse(self.session.aggregator.state.armed)
        self.assertEqual(self.session.get_snapshot().count, 1)
        self.assertIsNone(self.session._stream_handle)

        self.assertTrue(self.session.set_mode("streaming"))
        self.tick()
        self.assertEqual(self.session.get_snapshot().count, 2)

    def test_set_same_mode_is_noop(self):
        self.session.start()
        handle = self.session._stream_handle
        self.assertFalse(self.session.set_mode(Mode.STREAMING))
        self.assertIs(self.session._stream_handle, handle)

    def test_stale_result_discarded_after_mode_change(self):
        self.classifier.outputs = [POSITIVE]
        self.session.start()
        self.classifier.release.clear()

        future = self.session.sampler.tick(self.session._stream_handle)
        self.assertTrue(self.classifier.started.wait(5))
        self.assertTrue(self.session.get_snapshot().processing)

        self.session.set_mode(Mode.SINGLE_SHOT)
        self.classifier.release.set()
        future.result(timeout=5)

        snapshot = self.session.get_snapshot()
        self.assertEqual(snapshot.count, 0)
        self.assertIsNone(snapshot.last_label)
        self.assertEqual(self.session.stale_results, 1)

    def test_in_flight_call_blocks_new_stream_ticks(self):
        self.session.start()
        self.classifier.release.clear()
        first = self.session.sampler.tick(self.session._stream_handle)
        self.assertTrue(self.classifier.started.wait(5))

        self.assertIsNone(self.session.sampler.tick(self.session._stream_handle))

        self.classifier.release.set()
        first.result(timeout=5)
        self.assertEqual(self.classifier.calls, 1)

    def test_submit_image_rejected_in_streaming_mode(self):
        self.session.start()
        with self.assertRaises(SessionModeError):
            self.session.submit_image(FRAME)

    def test_load_failure(self):
        classifier = ScriptedClassifier(load_error=ClassifierLoadError("model missing"))
        session = SessionController(classifier, self.source, config=self.config)
        try:
            self.assertFalse(session.start())
            snapshot = session.get_snapshot()
            self.assertFalse(snapshot.model_ready)
            self.assertEqual(snapshot.model_error, "model missing")
            self.assertIsNone(session._stream_handle)
        finally:
            session.teardown()

    def test_streaming_waits_for_classifier(self):
        self.assertIsNone(self.session._stream_handle)
        self.session.on_classifier_ready()
        self.assertIsNotNone(self.session._stream_handle)

    def test_teardown_idempotent(self):
        self.session.start()
        self.session.teardown()
        self.session.teardown()

        self.assertIsNone(self.session._stream_handle)
        with self.assertRaises(SessionModeError):
            self.session.set_mode(Mode.SINGLE_SHOT)

    def test_interval_update_restarts_stream(self):
        self.session.start()
        old_handle = self.session._stream_handle

        self.session.update_configuration(sampling_interval_ms=2 * 3600 * 1000)

        self.assertFalse(old_handle.active)
        self.assertEqual(self.session._stream_handle.interval_ms, 2 * 3600 * 1000)

    def test_invalid_update_rejected_before_stream_restart(self):
        test_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, test_dir, True)
        config_manager = ConfigManager(os.path.join(test_dir, "config.json"))
        config_manager.update_config(sampling_interval_ms=3600 * 1000)

        self.session.teardown()
        self.session = SessionController(self.classifier, self.source,
                                         config_manager=config_manager)
        self.session.start()
        handle = self.session._stream_handle

        for update in ({"sampling_interval_ms": 0},
                       {"confidence_threshold": "high"},
                       {"target_label": ""}):
            with self.subTest(update=update):
                with self.assertRaises(ValueError):
                    self.session.update_configuration(**update)

                self.assertIs(self.session._stream_handle, handle)
                self.assertTrue(handle.active)
                self.assertEqual(self.session.get_snapshot().mode, Mode.STREAMING)

        saved = ConfigManager(config_manager.config_path)
        self.assertEqual(saved.get_config().sampling_interval_ms, 3600 * 1000)
        self.assertTrue(saved.validate_config())
        self.assertEqual(self.session.aggregator.confidence_threshold, 0.75)

    def test_invalid_update_without_config_manager(self):
        self.session.start()

        with self.assertRaises(ValueError):
            self.session.update_configuration(sampling_interval_ms=-5)

        self.assertEqual(self.session.config.sampling_interval_ms, 3600 * 1000)
        self.assertTrue(self.session._stream_handle.active)

    def test_reset_restarts_stopped_stream(self):
        self.session.start()
        with self.session._lock:
            self.session._stop_streaming_locked()

        self.session.reset()

        self.assertIsNotNone(self.session._stream_handle)
        self.assertTrue(self.session._stream_handle.active)

    def test_reset_zeroes_count(self):
        self.classifier.outputs = [POSITIVE]
        self.session.start()
        self.tick()

        self.session.reset()
        self.assertEqual(self.session.get_snapshot().count, 0)
        self.assertFalse(self.session.aggregator.state.armed)

    def test_get_status(self):
        self.session.start()
        self.tick()
        status = self.session.get_status()

        self.assertIn("snapshot", status)
        self.assertTrue(status["streaming"])
        self.assertEqual(status["stream"]["ticks"], 1)
        self.assertEqual(status["completed_classifications"], 1)
        self.assertEqual(status["target_label"], "weapon")


class TestSingleShotSession(SessionTestCase):
    """Single-shot behaviour."""

    initial_mode = "single_shot"

    def test_no_streaming_in_single_shot(self):
        self.session.start()
        self.assertIsNone(self.session._stream_handle)

    def test_scenario_b(self):
        self.classifier.outputs = [[("weapon", 0.8)], [("weapon", 0.9)], [("none", 0.1)]]
        self.session.start()

        counts = []
        for _ in range(3):
            self.session.submit_image(FRAME)
            counts.append(self.session.get_snapshot().count)

        self.assertEqual(counts, [1, 2, 2])

    def test_submit_returns_top(self):
        self.classifier.outputs = [[("none", 0.2), ("weapon", 0.8)]]
        self.session.start()
        top = self.session.submit_image(FRAME)
        self.assertEqual(top, ClassificationResult("weapon", 0.8))

    def test_submit_before_ready(self):
        with self.assertRaises(ClassifierNotReadyError):
            self.session.submit_image(FRAME)

    def test_submit_failure_leaves_state(self):
        self.classifier.outputs = [POSITIVE, ClassifierInferenceError("boom")]
        self.session.start()
        self.session.submit_image(FRAME)

        with self.assertRaises(ClassifierInferenceError):
            self.session.submit_image(FRAME)

        snapshot = self.session.get_snapshot()
        self.assertEqual(snapshot.count, 1)
        self.assertEqual(snapshot.last_label, "weapon")

    def test_submit_without_image(self):
        self.session.start()
        with self.assertRaises(ImageUnavailableError):
            self.session.submit_image(None)

    def test_events_recorded(self):
        self.classifier.outputs = [POSITIVE, NEGATIVE, POSITIVE]
        self.session.start()
        for _ in range(3):
            self.session.submit_image(FRAME)

        events = self.session.get_recent_events(10)
        self.assertEqual([e.count for e in events], [2, 1])
        self.assertTrue(all(e.mode == Mode.SINGLE_SHOT for e in events))

    def test_listeners_notified(self):
        snapshots = []
        self.session.add_listener(snapshots.append)
        self.session.start()
        self.session.submit_image(FRAME)
        self.session.set_mode(Mode.STREAMING)

        self.assertGreaterEqual(len(snapshots), 3)
        self.assertEqual(snapshots[-1].mode, Mode.STREAMING)

        self.session.remove_listener(snapshots.append)
        count = len(snapshots)
        self.session.set_mode(Mode.SINGLE_SHOT)
        self.assertEqual(len(snapshots), count)

    def test_listener_error_is_contained(self):
        def broken(snapshot):
            raise RuntimeError("render failed")

        self.session.add_listener(broken)
        self.session.start()
        self.session.submit_image(FRAME)

    def test_threshold_and_label_updates(self):
        self.classifier.outputs = [[("knife", 0.8)], [("knife", 0.8)]]
        self.session.start()

        self.session.update_configuration(target_label="knife", confidence_threshold=0.85)
        self.session.submit_image(FRAME)
        self.assertEqual(self.session.get_snapshot().count, 0)

        self.session.update_configuration(confidence_threshold=0.5)
        self.session.submit_image(FRAME)
        self.assertEqual(self.session.get_snapshot().count, 1)


if __name__ == '__main__':
    unittest.main()
