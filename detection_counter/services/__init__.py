"""Services for the detection counter."""

from .interfaces import (
    FrameSourceInterface,
    ImageClassifierInterface
)
from .detection_aggregator import DetectionAggregator
from .sampler import Sampler, StreamHandle

__all__ = [
    'FrameSourceInterface',
    'ImageClassifierInterface',
    'DetectionAggregator',
    'Sampler',
    'StreamHandle'
]
