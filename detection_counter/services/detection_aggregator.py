"""Detection aggregation: threshold, label match and edge-triggered counting.

The module-level ``observe_*`` functions are pure with respect to everything
but the ``DetectionState`` they are given, so the state machine can be driven
directly in tests.  ``DetectionAggregator`` binds them to a target label,
a threshold and an event history.

Streaming mode counts occurrences, not samples::

    Disarmed --positive / count += 1--> Armed
    Armed    --negative--------------> Disarmed

Single-shot mode counts every positive image and never touches ``armed``.
"""

import threading
from collections import deque
from typing import Deque, List, Optional

from ..models.classification import ClassificationResult, DetectionEvent, DetectionState, Mode
from ..logging_config import get_logger

logger = get_logger("detection_aggregator")

DEFAULT_THRESHOLD = 0.75


def is_positive(top: ClassificationResult, target_label: str,
                threshold: float = DEFAULT_THRESHOLD) -> bool:
    """True when ``top`` names the target label and is strictly above threshold."""
    return (target_label.lower() in top.label.lower()
            and top.probability > threshold)


def _record_observation(state: DetectionState, top: ClassificationResult) -> None:
    state.last_label = top.label
    state.last_probability = top.probability


def observe_streaming(state: DetectionState, top: ClassificationResult,
                      target_label: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    """Apply one streaming observation. Returns True on a rising edge."""
    positive = is_positive(top, target_label, threshold)
    rising_edge = False

    if positive and not state.armed:
        state.count += 1
        state.armed = True
        rising_edge = True
    elif not positive and state.armed:
        state.armed = False

    _record_observation(state, top)
    return rising_edge


def observe_single_shot(state: DetectionState, top: ClassificationResult,
                        target_label: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    """Apply one single-shot observation. Returns True when counted."""
    positive = is_positive(top, target_label, threshold)
    if positive:
        state.count += 1

    _record_observation(state, top)
    return positive


class DetectionAggregator:
    """Owns a DetectionState and turns top classifications into events."""

    def __init__(self,
                 target_label: str,
                 confidence_threshold: float = DEFAULT_THRESHOLD,
                 history_size: int = 50):
        """
        Initialize detection aggregator.

        Args:
            target_label: Label to count (case-insensitive substring match)
            confidence_threshold: Probability must be strictly greater than this
            history_size: Number of detection events kept for display
        """
        self.target_label = target_label
        self.confidence_threshold = confidence_threshold
        self.state = DetectionState()
        self._events: Deque[DetectionEvent] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def observe_streaming(self, top: ClassificationResult) -> Optional[DetectionEvent]:
        """Feed a live-stream sample; returns the event if one was counted."""
        with self._lock:
            counted = observe_streaming(self.state, top, self.target_label,
                                        self.confidence_threshold)
            return self._record_event(top, Mode.STREAMING) if counted else None

    def observe_single_shot(self, top: ClassificationResult) -> Optional[DetectionEvent]:
        """Feed a still image result; returns the event if one was counted."""
        with self._lock:
            counted = observe_single_shot(self.state, top, self.target_label,
                                          self.confidence_threshold)
            return self._record_event(top, Mode.SINGLE_SHOT) if counted else None

    def is_positive(self, top: ClassificationResult) -> bool:
        return is_positive(top, self.target_label, self.confidence_threshold)

    def disarm(self) -> None:
        """Close any open positive run without touching the count."""
        with self._lock:
            self.state.armed = False

    def reset(self) -> None:
        """Start a fresh session: zero count, disarm, forget history."""
        with self._lock:
            self.state = DetectionState()
            self._events.clear()
        logger.info("Detection state reset")

    def set_confidence_threshold(self, threshold: float) -> None:
        """Update confidence threshold."""
        self.confidence_threshold = max(0.0, min(1.0, threshold))
        logger.info(f"Confidence threshold set to {self.confidence_threshold}")

    def set_target_label(self, target_label: str) -> None:
        if not target_label:
            raise ValueError("Target label must not be empty")
        self.target_label = target_label
        logger.info(f"Target label set to '{target_label}'")

    def snapshot_state(self) -> DetectionState:
        """Copy of the current state, safe to hand out."""
        with self._lock:
            return DetectionState(
                armed=self.state.armed,
                count=self.state.count,
                last_label=self.state.last_label,
                last_probability=self.state.last_probability
            )

    def get_recent_events(self, limit: int = 10) -> List[DetectionEvent]:
        """Most recent events, newest first."""
        with self._lock:
            events = list(self._events)
        events.reverse()
        return events[:max(0, limit)]

    def _record_event(self, top: ClassificationResult, mode: Mode) -> DetectionEvent:
        event = DetectionEvent(
            label=top.label,
            probability=top.probability,
            mode=mode,
            count=self.state.count
        )
        self._events.append(event)
        logger.info(f"Detection #{event.count}: {top.display()} ({mode.value})")
        return event
