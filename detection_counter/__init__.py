"""
Detection Counter

Periodically classifies camera frames or uploaded images with an image
classifier and turns the noisy per-sample probabilities into a count of
discrete detection events.
"""

__version__ = "1.0.0"

from .config_manager import ConfigManager
from .models import (
    ClassificationResult,
    DetectionEvent,
    DetectionState,
    Mode,
    SampleResult,
    SessionSnapshot,
    SystemConfig
)
from .services import (
    DetectionAggregator,
    FrameSourceInterface,
    ImageClassifierInterface,
    Sampler
)
from .session_controller import SessionController

__all__ = [
    # Core management
    'ConfigManager',
    'SessionController',

    # Data models
    'ClassificationResult',
    'DetectionEvent',
    'DetectionState',
    'Mode',
    'SampleResult',
    'SessionSnapshot',
    'SystemConfig',

    # Services
    'DetectionAggregator',
    'FrameSourceInterface',
    'ImageClassifierInterface',
    'Sampler'
]
