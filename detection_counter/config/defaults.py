"""Default configuration values and constants."""

from typing import Dict, Any

# Default system configuration
DEFAULT_CONFIG: Dict[str, Any] = {
    # Detection settings
    "target_label": "weapon",
    "confidence_threshold": 0.75,
    "event_history_size": 50,

    # Sampling settings
    "sampling_interval_ms": 1000,
    "initial_mode": "streaming",

    # Model settings
    "model_url": "",
    "model_path": "models/model_unquant.tflite",
    "labels_path": "models/labels.txt",
    "num_threads": 2,

    # Camera settings
    "camera_index": 0,
    "frame_width": 640,
    "frame_height": 480,
    "mirror_frames": True,

    # Web settings
    "web_host": "0.0.0.0",
    "web_port": 5000,
    "max_upload_mb": 16,

    # Logging settings
    "log_level": "INFO",
    "log_dir": "logs"
}

VALID_MODES = ("streaming", "single_shot")

# File paths and directories
DEFAULT_PATHS = {
    "config_file": "config.json",
    "logs_dir": "logs",
    "models_dir": "models"
}

# Teachable Machine export layout
MODEL_SETTINGS = {
    "metadata_file": "metadata.json",
    "labels_file": "labels.txt",
    "model_suffix": ".tflite",
    "default_input_size": (224, 224),
    "download_timeout_seconds": 30
}
