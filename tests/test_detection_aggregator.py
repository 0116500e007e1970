"""Unit tests for the detection aggregator."""

import random
import unittest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from detection_counter.models.classification import ClassificationResult, DetectionState, Mode
from detection_counter.services.detection_aggregator import (
    DetectionAggregator, is_positive, observe_single_shot, observe_streaming
)


def result(label: str, probability: float) -> ClassificationResult:
    return ClassificationResult(label=label, probability=probability)


class TestPositivePredicate(unittest.TestCase):
    """Test cases for the threshold + label predicate."""

    def test_label_and_threshold(self):
        self.assertTrue(is_positive(result("weapon", 0.9), "weapon", 0.75))
        self.assertFalse(is_positive(result("none", 0.99), "weapon", 0.75))
        self.assertFalse(is_positive(result("weapon", 0.5), "weapon", 0.75))

    def test_threshold_is_strict(self):
        self.assertFalse(is_positive(result("weapon", 0.75), "weapon", 0.75))
        self.assertTrue(is_positive(result("weapon", 0.7501), "weapon", 0.75))

    def test_case_insensitive_substring(self):
        self.assertTrue(is_positive(result("Weapon Visible", 0.9), "weapon", 0.75))
        self.assertTrue(is_positive(result("weapon", 0.9), "WEAPON", 0.75))
        self.assertFalse(is_positive(result("weap", 0.9), "weapon", 0.75))

    def test_probability_range_enforced(self):
        with self.assertRaises(ValueError):
            result("weapon", 1.2)
        with self.assertRaises(ValueError):
            result("weapon", -0.1)


class TestStreamingObservation(unittest.TestCase):
    """Test cases for the edge-triggered streaming state machine."""

    def test_scenario_a_counts_rising_edges(self):
        state = DetectionState()
        samples = [("weapon", 0.9), ("weapon", 0.95), ("none", 0.1), ("weapon", 0.8)]

        counts = []
        for label, probability in samples:
            observe_streaming(state, result(label, probability), "weapon", 0.75)
            counts.append(state.count)

        self.assertEqual(counts, [1, 1, 1, 2])

    def test_transitions(self):
        state = DetectionState()

        self.assertTrue(observe_streaming(state, result("weapon", 0.9), "weapon"))
        self.assertTrue(state.armed)

        # Sustained positive
        self.assertFalse(observe_streaming(state, result("weapon", 0.9), "weapon"))
        self.assertTrue(state.armed)
        self.assertEqual(state.count, 1)

        # Falling edge
        self.assertFalse(observe_streaming(state, result("none", 0.9), "weapon"))
        self.assertFalse(state.armed)

        # Steady negative
        self.assertFalse(observe_streaming(state, result("weapon", 0.2), "weapon"))
        self.assertFalse(state.armed)
        self.assertEqual(state.count, 1)

    def test_last_observation_always_updated(self):
        state = DetectionState()
        observe_streaming(state, result("weapon", 0.9), "weapon")
        observe_streaming(state, result("weapon", 0.95), "weapon")
        self.assertEqual(state.last_label, "weapon")
        self.assertEqual(state.last_probability, 0.95)

        observe_streaming(state, result("background", 0.6), "weapon")
        self.assertEqual(state.last_label, "background")
        self.assertEqual(state.last_probability, 0.6)

    def test_count_equals_number_of_positive_runs(self):
        rng = random.Random(1234)
        for _ in range(200):
            flags = [rng.random() < 0.5 for _ in range(rng.randint(0, 40))]
            state = DetectionState()
            previous = False
            expected = 0
            for flag in flags:
                if flag and not previous:
                    expected += 1
                previous = flag
                sample = result("weapon", 0.9) if flag else result("none", 0.9)
                observe_streaming(state, sample, "weapon", 0.75)

            self.assertEqual(state.count, expected, flags)


class TestSingleShotObservation(unittest.TestCase):
    """Test cases for single-shot counting."""

    def test_scenario_b_counts_each_positive_image(self):
        state = DetectionState()
        counts = []
        for label, probability in [("weapon", 0.8), ("weapon", 0.9), ("none", 0.1)]:
            observe_single_shot(state, result(label, probability), "weapon", 0.75)
            counts.append(state.count)

        self.assertEqual(counts, [1, 2, 2])

    def test_armed_not_consulted_or_mutated(self):
        state = DetectionState(armed=True)
        self.assertTrue(observe_single_shot(state, result("weapon", 0.9), "weapon"))
        self.assertTrue(state.armed)
        self.assertEqual(state.count, 1)

        state.armed = False
        observe_single_shot(state, result("weapon", 0.9), "weapon")
        self.assertFalse(state.armed)
        self.assertEqual(state.count, 2)

    def test_same_image_counts_again(self):
        state = DetectionState()
        for _ in range(3):
            observe_single_shot(state, result("weapon", 0.9), "weapon")
        self.assertEqual(state.count, 3)


class TestDetectionAggregator(unittest.TestCase):
    """Test cases for DetectionAggregator."""

    def setUp(self):
        """Set up test fixtures."""
        self.aggregator = DetectionAggregator(target_label="weapon",
                                              confidence_threshold=0.75,
                                              history_size=3)

    def test_initialization(self):
        self.assertEqual(self.aggregator.target_label, "weapon")
        self.assertEqual(self.aggregator.confidence_threshold, 0.75)
        self.assertEqual(self.aggregator.state, DetectionState())

    def test_streaming_events(self):
        event = self.aggregator.observe_streaming(result("weapon", 0.9))
        self.assertIsNotNone(event)
        self.assertEqual(event.count, 1)
        self.assertEqual(event.mode, Mode.STREAMING)

        self.assertIsNone(self.aggregator.observe_streaming(result("weapon", 0.9)))

    def test_single_shot_events(self):
        event = self.aggregator.observe_single_shot(result("weapon", 0.8))
        self.assertEqual(event.mode, Mode.SINGLE_SHOT)
        self.assertIsNone(self.aggregator.observe_single_shot(result("none", 0.8)))

    def test_disarm_keeps_count(self):
        self.aggregator.observe_streaming(result("weapon", 0.9))
        self.aggregator.disarm()

        self.assertFalse(self.aggregator.state.armed)
        self.assertEqual(self.aggregator.state.count, 1)

        self.aggregator.observe_streaming(result("weapon", 0.9))
        self.assertEqual(self.aggregator.state.count, 2)

    def test_reset(self):
        self.aggregator.observe_streaming(result("weapon", 0.9))
        self.aggregator.reset()

        self.assertEqual(self.aggregator.state, DetectionState())
        self.assertEqual(self.aggregator.get_recent_events(), [])

    def test_recent_events_bounded_newest_first(self):
        for _ in range(5):
            self.aggregator.observe_single_shot(result("weapon", 0.9))

        events = self.aggregator.get_recent_events(limit=10)
        self.assertEqual([e.count for e in events], [5, 4, 3])
        self.assertEqual(len(self.aggregator.get_recent_events(limit=1)), 1)

    def test_set_confidence_threshold_clamped(self):
        self.aggregator.set_confidence_threshold(1.5)
        self.assertEqual(self.aggregator.confidence_threshold, 1.0)
        self.aggregator.set_confidence_threshold(-0.5)
        self.assertEqual(self.aggregator.confidence_threshold, 0.0)

    def test_set_target_label(self):
        self.aggregator.set_target_label("knife")
        self.assertTrue(self.aggregator.is_positive(result("Knife", 0.9)))
        with self.assertRaises(ValueError):
            self.aggregator.set_target_label("")

    def test_snapshot_state_is_a_copy(self):
        self.aggregator.observe_streaming(result("weapon", 0.9))
        snapshot = self.aggregator.snapshot_state()
        snapshot.count = 100
        self.assertEqual(self.aggregator.state.count, 1)


if __name__ == '__main__':
    unittest.main()
