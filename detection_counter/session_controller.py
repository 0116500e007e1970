"""Session controller: owns the mode and wires the sampler into the aggregator."""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional, List, Dict, Any, Callable, Union

from .config_manager import CONFIG_FIELDS, ConfigManager, config_errors
from .models.classification import ClassificationResult, DetectionEvent, Mode, SampleResult, SessionSnapshot
from .models.config import SystemConfig
from .services.detection_aggregator import DetectionAggregator
from .services.error_handler import (
    ClassifierLoadError, ClassifierNotReadyError, ErrorHandler, ErrorSeverity,
    ImageUnavailableError, SessionModeError
)
from .services.interfaces import FrameSourceInterface, ImageClassifierInterface, NDArray
from .services.sampler import Sampler, StreamHandle
from .logging_config import get_logger

logger = get_logger("session_controller")

SnapshotListener = Callable[[SessionSnapshot], None]


class SessionController:
    """Runs one detection session in streaming or single-shot mode.

    Every mode change and teardown bumps a generation counter.  Completion
    callbacks carry the generation they were issued under and are dropped
    when it no longer matches, so a classification that finishes after a
    mode switch never touches the detection state.
    """

    def __init__(self,
                 classifier: ImageClassifierInterface,
                 frame_source: FrameSourceInterface,
                 config: Optional[SystemConfig] = None,
                 config_manager: Optional[ConfigManager] = None,
                 sampler: Optional[Sampler] = None,
                 aggregator: Optional[DetectionAggregator] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.config_manager = config_manager
        if config is None:
            config = config_manager.get_config() if config_manager else SystemConfig()
        self.config = config

        self.error_handler = error_handler or ErrorHandler()
        self.error_handler.register_component("session")

        self.classifier = classifier
        self.frame_source = frame_source
        self.sampler = sampler or Sampler(classifier, self.error_handler)
        self.aggregator = aggregator or DetectionAggregator(
            target_label=config.target_label,
            confidence_threshold=config.confidence_threshold,
            history_size=config.event_history_size
        )

        # Session state
        self.mode = Mode(config.initial_mode)
        self.model_ready = False
        self.model_error: Optional[str] = None
        self.start_time: Optional[datetime] = None
        self._stream_handle: Optional[StreamHandle] = None
        self._generation = 0
        self._torn_down = False
        self._lock = threading.RLock()
        self._listeners: List[SnapshotListener] = []

        # Statistics
        self.stale_results = 0
        self.completed_classifications = 0

        logger.info(f"Session initialized in {self.mode.value} mode "
                    f"(target='{config.target_label}', threshold={config.confidence_threshold})")

    # Lifecycle

    def start(self) -> bool:
        """Load the classifier; returns False if the model failed to load."""
        self.start_time = datetime.now()
        try:
            self.classifier.load()
        except ClassifierLoadError as e:
            with self._lock:
                self.model_error = str(e)
            self.error_handler.handle_error("classifier", e, ErrorSeverity.CRITICAL)
            self._notify()
            return False

        self.on_classifier_ready()
        return True

    def on_classifier_ready(self) -> None:
        """Record readiness and start streaming if the session is in streaming mode."""
        with self._lock:
            if self._torn_down:
                return
            self.model_ready = True
            self.model_error = None
            if self.mode == Mode.STREAMING:
                self._start_streaming_locked()

        logger.info("Classifier ready")
        self._notify()

    def teardown(self) -> None:
        """Stop streaming and release the sampler. Safe to call repeatedly."""
        with self._lock:
            if self._torn_down:
                return
            self._torn_down = True
            self._generation += 1
            self._stop_streaming_locked()

        self.sampler.shutdown()
        logger.info(f"Session torn down with {self.aggregator.state.count} detection(s)")

    # Operations

    def set_mode(self, new_mode: Union[Mode, str]) -> bool:
        """Switch mode. Clears the armed flag but keeps the count.

        Returns False when the session is already in ``new_mode``.
        """
        new_mode = Mode(new_mode)

        with self._lock:
            if self._torn_down:
                raise SessionModeError("Session has been torn down")
            if new_mode == self.mode:
                return False

            self._stop_streaming_locked()
            self._generation += 1
            self.aggregator.disarm()
            self.mode = new_mode

            if new_mode == Mode.STREAMING and self.model_ready:
                self._start_streaming_locked()

        logger.info(f"Mode changed to {new_mode.value}")
        self._notify()
        return True

    def submit_image(self, image: NDArray) -> ClassificationResult:
        """Classify an uploaded image and count it if positive.

        Raises SessionModeError outside single-shot mode,
        ClassifierNotReadyError before the model is loaded, and lets
        ClassifierError / ImageUnavailableError from the sampler propagate
        with the detection state untouched.
        """
        with self._lock:
            if self._torn_down:
                raise SessionModeError("Session has been torn down")
            if self.mode != Mode.SINGLE_SHOT:
                raise SessionModeError("Images can only be submitted in single-shot mode")
            if not self.model_ready:
                raise ClassifierNotReadyError("Classifier is not ready")
            generation = self._generation

        top = self.sampler.classify_once(image)

        with self._lock:
            if generation != self._generation or self.mode != Mode.SINGLE_SHOT:
                self.stale_results += 1
                logger.debug("Discarding single-shot result from a previous mode")
            else:
                self.completed_classifications += 1
                self.aggregator.observe_single_shot(top)

        self._notify()
        return top

    def reset(self) -> None:
        """Begin a fresh session: zero the count and drop in-flight results."""
        with self._lock:
            self._generation += 1
            self.aggregator.reset()
            self._stop_streaming_locked()
            if self.mode == Mode.STREAMING and self.model_ready and not self._torn_down:
                self._start_streaming_locked()

        self._notify()

    def update_configuration(self, **kwargs) -> None:
        """Update configuration and apply it to the running session.

        Raises ValueError for an invalid update, before anything is saved or
        the stream is touched.
        """
        if self.config_manager is not None:
            self.config_manager.update_config(**kwargs)
            self.config = self.config_manager.get_config()
        else:
            candidate = replace(self.config, **{k: v for k, v in kwargs.items() if k in CONFIG_FIELDS})
            errors = config_errors(candidate)
            if errors:
                raise ValueError(f"Invalid configuration: {'; '.join(errors)}")
            self.config = candidate

        if 'confidence_threshold' in kwargs:
            self.aggregator.set_confidence_threshold(self.config.confidence_threshold)

        if 'target_label' in kwargs:
            self.aggregator.set_target_label(self.config.target_label)

        if 'sampling_interval_ms' in kwargs:
            with self._lock:
                if self._stream_handle is not None:
                    # Same generation: the restart is not a mode change
                    self._stop_streaming_locked()
                    self._start_streaming_locked()

        logger.info(f"Configuration updated: {kwargs}")

    # Presentation

    def add_listener(self, listener: SnapshotListener) -> None:
        """Call ``listener`` with a snapshot after each classification and mode change."""
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def get_snapshot(self) -> SessionSnapshot:
        with self._lock:
            state = self.aggregator.snapshot_state()
            return SessionSnapshot(
                mode=self.mode,
                model_ready=self.model_ready,
                last_label=state.last_label,
                last_probability=state.last_probability,
                count=state.count,
                processing=self.sampler.in_flight,
                model_error=self.model_error
            )

    def get_recent_events(self, limit: int = 10) -> List[DetectionEvent]:
        return self.aggregator.get_recent_events(limit)

    def get_status(self) -> Dict[str, Any]:
        """Get current session status and statistics."""
        uptime = None
        if self.start_time:
            uptime = (datetime.now() - self.start_time).total_seconds()

        with self._lock:
            streaming = self._stream_handle is not None
            stream_stats = None
            if self._stream_handle is not None:
                stream_stats = self.sampler.get_stream_stats(self._stream_handle)

        return {
            "snapshot": self.get_snapshot().to_dict(),
            "streaming": streaming,
            "stream": stream_stats,
            "uptime_seconds": uptime,
            "target_label": self.aggregator.target_label,
            "confidence_threshold": self.aggregator.confidence_threshold,
            "completed_classifications": self.completed_classifications,
            "stale_results": self.stale_results,
            "sampler": self.sampler.get_stats(),
            "errors": self.error_handler.get_error_stats(),
        }

    # Internals

    def _start_streaming_locked(self) -> None:
        if self._stream_handle is not None:
            return

        try:
            self.frame_source.start_capture()
        except ImageUnavailableError as e:
            # The source retries opening on each tick
            logger.warning(f"Frame source unavailable: {e}")

        generation = self._generation
        self._stream_handle = self.sampler.start_streaming(
            self.config.sampling_interval_ms,
            self.frame_source,
            lambda result: self._on_stream_result(generation, result)
        )

    def _stop_streaming_locked(self) -> None:
        if self._stream_handle is None:
            return

        self.sampler.stop_streaming(self._stream_handle)
        self._stream_handle = None
        self.frame_source.stop_capture()

    def _on_stream_result(self, generation: int, result: SampleResult) -> None:
        with self._lock:
            if (generation != self._generation or self._torn_down
                    or self.mode != Mode.STREAMING):
                self.stale_results += 1
                logger.debug("Discarding stale streaming result")
                return

            self.completed_classifications += 1
            if result.ok:
                self.aggregator.observe_streaming(result.top)

        self._notify()

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            return

        snapshot = self.get_snapshot()
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Snapshot listener failed: {e}", exc_info=True)
