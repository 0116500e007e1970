"""Classification and detection state data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any


class Mode(Enum):
    """Sampling mode of a session."""
    STREAMING = "streaming"
    SINGLE_SHOT = "single_shot"


@dataclass(frozen=True)
class ClassificationResult:
    """One (label, probability) pair emitted by the classifier."""
    label: str
    probability: float

    def __post_init__(self):
        if not 0.0 <= self.probability <= 1.0:
            raise ValueError(f"Probability out of range [0, 1]: {self.probability}")

    def display(self) -> str:
        """Format as 'label (93.4%)'."""
        return f"{self.label} ({self.probability * 100:.1f}%)"


@dataclass
class DetectionState:
    """Mutable counting state owned by the detection aggregator.

    ``armed`` is only meaningful in streaming mode: it is True while a
    positive run is open and its rising edge has already been counted.
    """
    armed: bool = False
    count: int = 0
    last_label: Optional[str] = None
    last_probability: Optional[float] = None


@dataclass
class SampleResult:
    """Outcome of one classifier invocation made by the sampler."""
    top: Optional[ClassificationResult] = None
    error: Optional[Exception] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and self.top is not None


@dataclass
class DetectionEvent:
    """A counted occurrence of the target label."""
    label: str
    probability: float
    mode: Mode
    count: int
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'label': self.label,
            'probability': self.probability,
            'mode': self.mode.value,
            'count': self.count,
        }


@dataclass
class SessionSnapshot:
    """Read-only view of a session handed to the presentation layer."""
    mode: Mode
    model_ready: bool
    last_label: Optional[str]
    last_probability: Optional[float]
    count: int
    processing: bool
    model_error: Optional[str] = None

    @property
    def display_label(self) -> str:
        if self.last_label is None or self.last_probability is None:
            return "Predicting..."
        return f"{self.last_label} ({self.last_probability * 100:.1f}%)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode.value,
            'model_ready': self.model_ready,
            'last_label': self.last_label,
            'last_probability': self.last_probability,
            'count': self.count,
            'processing': self.processing,
            'model_error': self.model_error,
            'display_label': self.display_label,
        }
