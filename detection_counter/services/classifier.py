"""TensorFlow Lite image classifier for Teachable Machine style exports."""

import os
from typing import List, Sequence

import cv2
import numpy as np

from ..models.classification import ClassificationResult
from .interfaces import ImageClassifierInterface, NDArray
from .error_handler import ClassifierLoadError, ClassifierInferenceError
from ..logging_config import get_logger

logger = get_logger("classifier")


def top_classification(results: Sequence[ClassificationResult]) -> ClassificationResult:
    """Highest-probability result; the first one wins a tie."""
    if not results:
        raise ClassifierInferenceError("Classifier returned no results")

    best = results[0]
    for result in results[1:]:
        if result.probability > best.probability:
            best = result
    return best


def _load_interpreter_class():
    """Resolve a TFLite Interpreter class from the installed runtime."""
    try:
        from tflite_runtime.interpreter import Interpreter
        return Interpreter
    except ImportError:
        pass

    try:
        import tensorflow as tf
        return tf.lite.Interpreter
    except ImportError as e:
        raise ClassifierLoadError(
            "No TensorFlow Lite runtime installed (tflite-runtime or tensorflow)"
        ) from e


def center_crop_square(image: NDArray) -> NDArray:
    """Crop the largest centered square, matching Teachable Machine preprocessing."""
    h, w = image.shape[:2]
    side = min(h, w)
    top = (h - side) // 2
    left = (w - side) // 2
    return image[top:top + side, left:left + side]


def to_rgb(image: NDArray) -> NDArray:
    """Normalize grayscale / RGBA arrays to 3-channel RGB."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2RGB)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    raise ClassifierInferenceError(f"Unsupported image shape: {image.shape}")


class TFLiteImageClassifier(ImageClassifierInterface):
    """Image classifier backed by a TensorFlow Lite interpreter."""

    def __init__(self, model_path: str, labels: List[str], num_threads: int = 2):
        self.model_path = model_path
        self.labels = list(labels)
        self.num_threads = num_threads

        self.interpreter = None
        self.input_h = 0
        self.input_w = 0
        self.input_dtype = np.float32
        self.input_quantization = (0.0, 0)
        self.output_dtype = np.float32
        self.output_quantization = (0.0, 0)
        self._in_idx = None
        self._out_idx = None
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """Load the model and allocate tensors."""
        if not os.path.exists(self.model_path):
            raise ClassifierLoadError(f"Model file not found: {self.model_path}")
        if not self.labels:
            raise ClassifierLoadError("No labels provided for classifier")

        interpreter_class = _load_interpreter_class()
        logger.info(f"Loading TFLite model from: {self.model_path}")

        try:
            self.interpreter = interpreter_class(model_path=self.model_path,
                                                 num_threads=self.num_threads)
            self.interpreter.allocate_tensors()

            input_details = self.interpreter.get_input_details()[0]
            self._in_idx = input_details["index"]
            self.input_h = int(input_details["shape"][1])
            self.input_w = int(input_details["shape"][2])
            self.input_dtype = input_details["dtype"]
            self.input_quantization = tuple(input_details.get("quantization", (0.0, 0)))

            output_details = self.interpreter.get_output_details()[0]
            self._out_idx = output_details["index"]
            self.output_dtype = output_details["dtype"]
            self.output_quantization = tuple(output_details.get("quantization", (0.0, 0)))
            num_classes = int(output_details["shape"][-1])
        except Exception as e:
            raise ClassifierLoadError(f"Failed to load TFLite model: {e}") from e

        if num_classes != len(self.labels):
            raise ClassifierLoadError(
                f"Model has {num_classes} outputs but {len(self.labels)} labels were given"
            )

        self._loaded = True
        logger.info(f"Model loaded successfully. Input shape: {self.input_h}x{self.input_w}, "
                    f"labels: {self.labels}")

    def classify(self, image: NDArray) -> List[ClassificationResult]:
        """Classify an RGB image into one result per label."""
        if not self._loaded:
            raise ClassifierInferenceError("Model not loaded")
        if image is None:
            raise ClassifierInferenceError("No image to classify")

        try:
            inp = self._preprocess(image)
            self.interpreter.set_tensor(self._in_idx, inp)
            self.interpreter.invoke()
            raw = self.interpreter.get_tensor(self._out_idx)[0]
        except ClassifierInferenceError:
            raise
        except Exception as e:
            raise ClassifierInferenceError(f"Inference failed: {e}") from e

        probabilities = self._postprocess(raw)
        return [ClassificationResult(label=label, probability=float(p))
                for label, p in zip(self.labels, probabilities)]

    def _preprocess(self, image: NDArray) -> NDArray:
        rgb = center_crop_square(to_rgb(np.asarray(image)))
        resized = cv2.resize(rgb, (self.input_w, self.input_h), interpolation=cv2.INTER_AREA)

        # Teachable Machine models take pixels scaled to [-1, 1]
        normalized = resized.astype(np.float32) / 127.5 - 1.0

        scale, zero_point = self.input_quantization
        if np.issubdtype(self.input_dtype, np.integer) and scale:
            info = np.iinfo(self.input_dtype)
            quantized = np.round(normalized / scale + zero_point)
            inp = np.clip(quantized, info.min, info.max).astype(self.input_dtype)
        else:
            inp = normalized.astype(self.input_dtype)

        return inp[None, ...]

    def _postprocess(self, raw: NDArray) -> NDArray:
        scale, zero_point = self.output_quantization
        values = raw.astype(np.float32)
        if np.issubdtype(self.output_dtype, np.integer) and scale:
            values = (values - zero_point) * scale

        # Logit outputs get a softmax; probability outputs pass through
        if values.min() < -1e-3 or values.max() > 1.0 + 1e-3:
            exp = np.exp(values - values.max())
            values = exp / exp.sum()

        return np.clip(values, 0.0, 1.0)

