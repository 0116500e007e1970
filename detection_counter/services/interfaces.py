"""Service interfaces and abstract base classes."""

from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ..models.classification import ClassificationResult

NDArray = np.ndarray


class ImageClassifierInterface(ABC):
    """Interface for the external image classifier."""

    @abstractmethod
    def load(self) -> None:
        """Load the model. Raises ClassifierLoadError on failure."""
        pass

    @abstractmethod
    def classify(self, image: NDArray) -> List[ClassificationResult]:
        """Classify an RGB image.

        Returns one result per known label, in the model's label order.
        Raises ClassifierInferenceError on failure.
        """
        pass

    @property
    @abstractmethod
    def is_loaded(self) -> bool:
        """Whether load() has completed successfully."""
        pass


class FrameSourceInterface(ABC):
    """Interface for an image source (live camera or static image)."""

    @abstractmethod
    def start_capture(self) -> None:
        """Start capture."""
        pass

    @abstractmethod
    def get_frame(self) -> Optional[NDArray]:
        """Get the current RGB frame, or None when transiently unavailable."""
        pass

    @abstractmethod
    def stop_capture(self) -> None:
        """Stop capture and release the device."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check whether frames can currently be produced."""
        pass
