"""Configuration components for the detection counter."""

from .defaults import (
    DEFAULT_CONFIG,
    DEFAULT_PATHS,
    MODEL_SETTINGS,
    VALID_MODES
)

__all__ = [
    'DEFAULT_CONFIG',
    'DEFAULT_PATHS',
    'MODEL_SETTINGS',
    'VALID_MODES'
]
