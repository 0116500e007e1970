"""Sampler: periodic and one-shot classifier invocation with a single-flight guard."""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from ..models.classification import ClassificationResult, SampleResult
from .classifier import top_classification
from .interfaces import FrameSourceInterface, ImageClassifierInterface, NDArray
from .error_handler import (
    ClassifierBusyError, ClassifierError, ClassifierInferenceError,
    ErrorHandler, ErrorSeverity, ImageUnavailableError
)
from ..logging_config import get_logger, log_performance

logger = get_logger("sampler")

ResultCallback = Callable[[SampleResult], None]


class StreamHandle:
    """Handle for one streaming loop; pass it back to Sampler.stop_streaming()."""

    def __init__(self, interval_ms: int, source: FrameSourceInterface, on_result: ResultCallback):
        self.interval_ms = interval_ms
        self.source = source
        self.on_result = on_result
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

        # Tick statistics
        self.ticks = 0
        self.dropped_ticks = 0
        self.unavailable_frames = 0
        self.dispatched = 0

    @property
    def active(self) -> bool:
        return not self.stop_event.is_set()

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0


class Sampler:
    """Invokes the classifier for a stream of frames or a single image.

    At most one classification is outstanding at any time.  A streaming tick
    that arrives while one is in flight is dropped, never queued, and
    ``classify_once`` is rejected with ClassifierBusyError.
    """

    def __init__(self, classifier: ImageClassifierInterface,
                 error_handler: Optional[ErrorHandler] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.classifier = classifier
        self.error_handler = error_handler or ErrorHandler()
        self.error_handler.register_component("classifier")

        self._executor = executor or ThreadPoolExecutor(max_workers=1,
                                                        thread_name_prefix="classifier")
        self._lock = threading.Lock()
        self._in_flight = False
        self._handles: List[StreamHandle] = []
        self._shut_down = False

        # Statistics
        self.invocation_count = 0
        self.failure_count = 0
        self.last_inference_ms = 0.0

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def start_streaming(self, interval_ms: int, source: FrameSourceInterface,
                        on_result: ResultCallback, start_thread: bool = True) -> StreamHandle:
        """Begin ticking every ``interval_ms``; results go to ``on_result``.

        With ``start_thread=False`` no loop thread is started and the caller
        drives the handle with ``tick()``.
        """
        if interval_ms <= 0:
            raise ValueError(f"Sampling interval must be positive: {interval_ms}")

        handle = StreamHandle(interval_ms, source, on_result)
        with self._lock:
            if self._shut_down:
                raise RuntimeError("Sampler has been shut down")
            self._handles.append(handle)

        if start_thread:
            handle.thread = threading.Thread(target=self._stream_loop, args=(handle,),
                                             name="sampler-stream", daemon=True)
            handle.thread.start()

        logger.info(f"Streaming started with {interval_ms}ms interval")
        return handle

    def stop_streaming(self, handle: StreamHandle, timeout: float = 5.0) -> None:
        """Stop a streaming loop. No classification is dispatched for it afterwards.

        A classification already in flight is allowed to complete and is still
        delivered to the handle's callback.
        """
        with self._lock:
            handle.stop_event.set()
            if handle in self._handles:
                self._handles.remove(handle)

        if handle.thread and handle.thread is not threading.current_thread():
            handle.thread.join(timeout=timeout)

        logger.info(f"Streaming stopped after {handle.ticks} ticks "
                    f"({handle.dropped_ticks} dropped, {handle.unavailable_frames} without frame)")

    def tick(self, handle: StreamHandle) -> Optional[Future]:
        """Run one sampling tick. Returns the dispatched job, or None if skipped."""
        with self._lock:
            handle.ticks += 1
            if not handle.active or self._shut_down:
                return None
            if self._in_flight:
                handle.dropped_ticks += 1
                logger.debug("Tick dropped: classification still in flight")
                return None
            self._in_flight = True

        try:
            frame = self._read_frame(handle.source)
        except Exception:
            self._release()
            raise

        if frame is None:
            with self._lock:
                handle.unavailable_frames += 1
                self._in_flight = False
            return None

        try:
            future = self._executor.submit(self._run_stream_job, handle, frame)
        except RuntimeError as e:
            # Executor already shut down
            self._release()
            logger.debug(f"Tick not dispatched: {e}")
            return None

        with self._lock:
            handle.dispatched += 1
        return future

    def classify_once(self, image: NDArray) -> ClassificationResult:
        """Classify one static image in the calling thread.

        Raises ClassifierBusyError if a classification is already in flight,
        ImageUnavailableError for a missing image and ClassifierError when the
        classifier fails.
        """
        if image is None:
            raise ImageUnavailableError("No image supplied")

        with self._lock:
            if self._in_flight:
                raise ClassifierBusyError("A classification is already in progress")
            self._in_flight = True

        try:
            result = self._invoke(image)
        finally:
            self._release()

        if result.error is not None:
            raise result.error
        return result.top

    def shutdown(self) -> None:
        """Stop every streaming loop and release the worker thread. Idempotent."""
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True
            handles = list(self._handles)

        for handle in handles:
            self.stop_streaming(handle)

        self._executor.shutdown(wait=False)
        logger.info("Sampler shut down")

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "in_flight": self._in_flight,
                "active_streams": len(self._handles),
                "invocation_count": self.invocation_count,
                "failure_count": self.failure_count,
                "last_inference_ms": self.last_inference_ms,
            }

    def get_stream_stats(self, handle: StreamHandle) -> dict:
        """Tick counters of one stream, read under the sampler lock."""
        with self._lock:
            return {
                "interval_ms": handle.interval_ms,
                "ticks": handle.ticks,
                "dropped_ticks": handle.dropped_ticks,
                "unavailable_frames": handle.unavailable_frames,
                "dispatched": handle.dispatched,
            }

    def _stream_loop(self, handle: StreamHandle) -> None:
        logger.debug("Sampling loop started")
        while not handle.stop_event.wait(handle.interval_seconds):
            try:
                self.tick(handle)
            except Exception as e:
                logger.error(f"Error in sampling tick: {e}", exc_info=True)
        logger.debug("Sampling loop ended")

    def _read_frame(self, source: FrameSourceInterface) -> Optional[NDArray]:
        try:
            frame = source.get_frame()
        except ImageUnavailableError as e:
            logger.debug(f"Tick skipped: {e}")
            return None

        if frame is None:
            logger.debug("Tick skipped: no frame available")
        return frame

    def _run_stream_job(self, handle: StreamHandle, frame: NDArray) -> SampleResult:
        # Deliver before releasing so results are applied in dispatch order
        try:
            result = self._invoke(frame)
            try:
                handle.on_result(result)
            except Exception as e:
                logger.error(f"Result callback failed: {e}", exc_info=True)
            return result
        finally:
            self._release()

    def _invoke(self, image: NDArray) -> SampleResult:
        """Call the classifier, turning any failure into a SampleResult error."""
        start_time = time.time()
        try:
            top = top_classification(self.classifier.classify(image))
        except ClassifierError as e:
            error = e
        except Exception as e:
            error = ClassifierInferenceError(f"Unexpected classifier failure: {e}")
            error.__cause__ = e
        else:
            duration_ms = (time.time() - start_time) * 1000
            with self._lock:
                self.invocation_count += 1
                self.last_inference_ms = duration_ms
            self.error_handler.mark_healthy("classifier")
            log_performance("Classification completed", {
                "label": top.label,
                "probability": f"{top.probability:.3f}",
                "inference_ms": f"{duration_ms:.1f}"
            })
            return SampleResult(top=top, duration_ms=duration_ms)

        duration_ms = (time.time() - start_time) * 1000
        with self._lock:
            self.invocation_count += 1
            self.failure_count += 1
        self.error_handler.handle_error("classifier", error, ErrorSeverity.MEDIUM)
        return SampleResult(error=error, duration_ms=duration_ms)

    def _release(self) -> None:
        with self._lock:
            self._in_flight = False
