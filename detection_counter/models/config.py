"""Configuration data models."""

from dataclasses import dataclass, asdict
from typing import Dict, Any


@dataclass
class SystemConfig:
    """System configuration settings."""
    # Detection settings
    target_label: str = "weapon"
    confidence_threshold: float = 0.75
    event_history_size: int = 50

    # Sampling settings
    sampling_interval_ms: int = 1000
    initial_mode: str = "streaming"  # streaming, single_shot

    # Model settings
    model_url: str = ""
    model_path: str = "models/model_unquant.tflite"
    labels_path: str = "models/labels.txt"
    num_threads: int = 2

    # Camera settings
    camera_index: int = 0
    frame_width: int = 640
    frame_height: int = 480
    mirror_frames: bool = True

    # Web settings
    web_host: str = "0.0.0.0"
    web_port: int = 5000
    max_upload_mb: int = 16

    # Logging settings
    log_level: str = "INFO"
    log_dir: str = "logs"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
