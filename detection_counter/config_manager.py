"""Configuration management with JSON persistence and change callbacks."""

import json
import os
from dataclasses import fields, replace
from typing import Optional, Dict, Any, Callable, List

from .models.config import SystemConfig
from .config.defaults import DEFAULT_CONFIG, DEFAULT_PATHS, VALID_MODES
from .logging_config import get_logger

logger = get_logger("config_manager")

CONFIG_FIELDS = {f.name for f in fields(SystemConfig)}


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def config_errors(config: SystemConfig) -> List[str]:
    """Describe every invalid setting in ``config``; empty when valid."""
    errors = []

    if not _is_number(config.confidence_threshold) or not 0.0 <= config.confidence_threshold <= 1.0:
        errors.append(f"confidence_threshold must be a number in [0, 1]: {config.confidence_threshold!r}")

    if not isinstance(config.target_label, str) or not config.target_label.strip():
        errors.append("target_label must be a non-empty string")

    if not _is_int(config.sampling_interval_ms) or config.sampling_interval_ms <= 0:
        errors.append(f"sampling_interval_ms must be a positive integer: {config.sampling_interval_ms!r}")

    if config.initial_mode not in VALID_MODES:
        errors.append(f"initial_mode must be one of {VALID_MODES}: {config.initial_mode!r}")

    for name in ("frame_width", "frame_height", "event_history_size", "num_threads"):
        value = getattr(config, name)
        if not _is_int(value) or value < 1:
            errors.append(f"{name} must be a positive integer: {value!r}")

    if not _is_int(config.web_port) or not 1 <= config.web_port <= 65535:
        errors.append(f"web_port must be in [1, 65535]: {config.web_port!r}")

    if not _is_number(config.max_upload_mb) or config.max_upload_mb <= 0:
        errors.append(f"max_upload_mb must be positive: {config.max_upload_mb!r}")

    return errors


class ConfigManager:
    """Manages system configuration with file persistence."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or DEFAULT_PATHS["config_file"]
        self._config: Optional[SystemConfig] = None
        self._config_change_callbacks: List[Callable[[SystemConfig], None]] = []

        self.load_config()

    def load_config(self) -> SystemConfig:
        """Load configuration from file or create default."""
        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, 'r') as f:
                    config_dict = json.load(f)
                self._config = self._from_dict(config_dict)
            except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
                logger.error(f"Error loading config: {e}. Using defaults.")
                self._config = SystemConfig(**DEFAULT_CONFIG)
        else:
            self._config = SystemConfig(**DEFAULT_CONFIG)
            self.save_config()

        return self._config

    def save_config(self) -> None:
        """Save current configuration to file."""
        if self._config is None:
            return

        directory = os.path.dirname(self.config_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(self.config_path, 'w') as f:
            json.dump(self._config.to_dict(), f, indent=2)

    def get_config(self) -> SystemConfig:
        """Get current configuration."""
        if self._config is None:
            return self.load_config()
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration with new values.

        The update is checked on a copy first; an invalid result raises
        ValueError and leaves both the current and the saved config untouched.
        """
        if self._config is None:
            self.load_config()

        known = {}
        for key, value in kwargs.items():
            if key in CONFIG_FIELDS:
                known[key] = value
            else:
                logger.warning(f"Ignoring unknown configuration key: {key}")

        candidate = replace(self._config, **known)
        errors = config_errors(candidate)
        if errors:
            raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

        self._config = candidate
        self.save_config()

        for callback in self._config_change_callbacks:
            try:
                callback(self._config)
            except Exception as e:
                logger.error(f"Error in config change callback: {e}")

    def validate_config(self, config: Optional[SystemConfig] = None) -> bool:
        """Validate the current configuration, or ``config`` if given."""
        config = config or self._config
        if config is None:
            return False
        return not config_errors(config)

    def add_config_change_callback(self, callback: Callable[[SystemConfig], None]) -> None:
        """Register a callback invoked after every update."""
        self._config_change_callbacks.append(callback)

    def remove_config_change_callback(self, callback: Callable[[SystemConfig], None]) -> None:
        if callback in self._config_change_callbacks:
            self._config_change_callbacks.remove(callback)

    def export_config(self) -> Dict[str, Any]:
        return self.get_config().to_dict()

    def reset_to_defaults(self) -> None:
        """Replace the configuration with defaults and persist it."""
        self._config = SystemConfig(**DEFAULT_CONFIG)
        self.save_config()
        logger.info("Configuration reset to defaults")

    @staticmethod
    def _from_dict(config_dict: Dict[str, Any]) -> SystemConfig:
        unknown = set(config_dict) - CONFIG_FIELDS
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {sorted(unknown)}")

        values = dict(DEFAULT_CONFIG)
        values.update({k: v for k, v in config_dict.items() if k in CONFIG_FIELDS})
        return SystemConfig(**values)
