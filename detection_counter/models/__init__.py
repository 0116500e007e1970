"""Data models for the detection counter."""

from .classification import (
    ClassificationResult,
    DetectionEvent,
    DetectionState,
    Mode,
    SampleResult,
    SessionSnapshot,
)
from .config import SystemConfig

__all__ = ['ClassificationResult', 'DetectionEvent', 'DetectionState', 'Mode',
           'SampleResult', 'SessionSnapshot', 'SystemConfig']
