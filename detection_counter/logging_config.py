"""Centralized logging configuration for the detection counter."""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional, Dict, Any
from pathlib import Path

LOGGER_NAMESPACE = "detection_counter"


class StructuredFormatter(logging.Formatter):
    """Custom formatter that adds structured information to log records."""

    def __init__(self, include_context: bool = True):
        self.include_context = include_context
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured information."""
        base_format = "%(asctime)s | %(levelname)-8s | %(name)-35s | %(message)s"

        # Context passed as extra={'context': {...}}
        if self.include_context and hasattr(record, 'context'):
            context_str = " | ".join([f"{k}={v}" for k, v in record.context.items()])
            base_format += f" | Context: {context_str}"

        if record.levelno >= logging.ERROR and record.exc_info:
            base_format += " | %(pathname)s:%(lineno)d"

        formatter = logging.Formatter(base_format)
        return formatter.format(record)


class ContextFilter(logging.Filter):
    """Filter that adds the component name and process id to log records."""

    def __init__(self, component_name: Optional[str] = None):
        super().__init__()
        self.component_name = component_name
        self.process_id = os.getpid()

    def filter(self, record: logging.LogRecord) -> bool:
        record.process_id = self.process_id
        if self.component_name:
            record.component = self.component_name
        record.timestamp_ms = datetime.now().timestamp() * 1000
        return True


class LoggingManager:
    """Installs console and rotating file handlers on the root logger."""

    def __init__(self, log_dir: str = "logs"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Log files
        self.main_log_file = self.log_dir / "detection_counter.log"
        self.error_log_file = self.log_dir / "errors.log"
        self.performance_log_file = self.log_dir / "performance.log"

        self.log_level = logging.INFO
        self.max_log_size = 10 * 1024 * 1024  # 10MB
        self.backup_count = 5

        self._setup_root_logger()

    def _setup_root_logger(self) -> None:
        """Setup the root logger configuration."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(StructuredFormatter(include_context=False))
        root_logger.addHandler(console_handler)

        main_file_handler = logging.handlers.RotatingFileHandler(
            self.main_log_file,
            maxBytes=self.max_log_size,
            backupCount=self.backup_count
        )
        main_file_handler.setLevel(logging.DEBUG)
        main_file_handler.setFormatter(StructuredFormatter(include_context=True))
        root_logger.addHandler(main_file_handler)

        # Errors and critical only
        error_file_handler = logging.handlers.RotatingFileHandler(
            self.error_log_file,
            maxBytes=self.max_log_size,
            backupCount=self.backup_count
        )
        error_file_handler.setLevel(logging.ERROR)
        error_file_handler.setFormatter(StructuredFormatter(include_context=True))
        root_logger.addHandler(error_file_handler)

        perf_handler = logging.handlers.RotatingFileHandler(
            self.performance_log_file,
            maxBytes=self.max_log_size,
            backupCount=self.backup_count
        )
        perf_handler.setLevel(logging.INFO)
        perf_handler.setFormatter(logging.Formatter("%(asctime)s | %(message)s"))
        perf_logger = logging.getLogger(f"{LOGGER_NAMESPACE}.performance")
        perf_logger.handlers.clear()
        perf_logger.addHandler(perf_handler)
        perf_logger.propagate = False

        logging.info("Logging system initialized")

    def set_log_level(self, level: int) -> None:
        """Set the global log level."""
        self.log_level = level
        logging.getLogger().setLevel(level)

    def get_log_stats(self) -> Dict[str, Any]:
        """Get logging statistics."""
        stats = {
            "log_directory": str(self.log_dir),
            "log_files": {},
            "log_level": logging.getLevelName(self.log_level)
        }

        for log_file in [self.main_log_file, self.error_log_file, self.performance_log_file]:
            if log_file.exists():
                stats["log_files"][log_file.name] = {
                    "size_mb": log_file.stat().st_size / (1024 * 1024),
                    "modified": datetime.fromtimestamp(log_file.stat().st_mtime).isoformat()
                }

        return stats


# Set by setup_logging(); importing the package never touches the filesystem.
logging_manager: Optional[LoggingManager] = None

_component_loggers: Dict[str, logging.Logger] = {}


def get_logger(component_name: str) -> logging.Logger:
    """Get or create a logger for a specific component."""
    if component_name in _component_loggers:
        return _component_loggers[component_name]

    logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{component_name}")
    logger.addFilter(ContextFilter(component_name))
    _component_loggers[component_name] = logger
    return logger


def log_performance(message: str, metrics: Optional[Dict[str, Any]] = None) -> None:
    """Log performance metrics to the performance log."""
    perf_logger = logging.getLogger(f"{LOGGER_NAMESPACE}.performance")

    if metrics:
        metric_str = " | ".join([f"{k}={v}" for k, v in metrics.items()])
        message = f"{message} | {metric_str}"

    perf_logger.info(message)


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> LoggingManager:
    """Setup centralized logging system."""
    global logging_manager

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging_manager = LoggingManager(log_dir)
    logging_manager.set_log_level(numeric_level)

    return logging_manager
