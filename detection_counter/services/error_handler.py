"""Error kinds and per-component error tracking."""

import threading
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Any, Optional

from ..logging_config import get_logger

logger = get_logger("error_handler")


class ClassifierError(Exception):
    """Base class for failures at the classifier boundary."""


class ClassifierLoadError(ClassifierError):
    """The classifier model could not be initialized."""


class ClassifierInferenceError(ClassifierError):
    """A single classifier invocation failed."""


class ClassifierBusyError(ClassifierError):
    """A classification is already in flight."""


class ClassifierNotReadyError(ClassifierError):
    """Classification was requested before the model finished loading."""


class ImageUnavailableError(Exception):
    """No frame or image is available to classify."""


class SessionModeError(Exception):
    """The operation is not valid in the session's current mode."""


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ComponentStatus(Enum):
    """Component status levels."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class ErrorRecord:
    """Record of an error occurrence."""
    component_name: str
    error: Exception
    severity: ErrorSeverity
    timestamp: datetime = field(default_factory=datetime.now)
    traceback_str: str = ""


class ErrorHandler:
    """Records component errors and derives component status from them."""

    def __init__(self, max_records: int = 100):
        self.max_records = max_records
        self.error_records: List[ErrorRecord] = []
        self.component_error_counts: Dict[str, int] = {}
        self.component_status: Dict[str, ComponentStatus] = {}
        self._lock = threading.Lock()

    def register_component(self, component_name: str) -> None:
        """Register a component for error tracking."""
        with self._lock:
            self.component_error_counts.setdefault(component_name, 0)
            self.component_status.setdefault(component_name, ComponentStatus.HEALTHY)
        logger.debug(f"Component registered: {component_name}")

    def handle_error(self, component_name: str, error: Exception,
                     severity: ErrorSeverity = ErrorSeverity.MEDIUM) -> ErrorRecord:
        """Record an error from a component and update its status."""
        record = ErrorRecord(
            component_name=component_name,
            error=error,
            severity=severity,
            traceback_str="".join(traceback.format_exception(type(error), error, error.__traceback__))
        )

        with self._lock:
            self.error_records.append(record)
            if len(self.error_records) > self.max_records:
                self.error_records = self.error_records[-self.max_records:]

            self.component_error_counts[component_name] = \
                self.component_error_counts.get(component_name, 0) + 1

            if severity == ErrorSeverity.CRITICAL:
                self.component_status[component_name] = ComponentStatus.FAILED
            elif severity in (ErrorSeverity.HIGH, ErrorSeverity.MEDIUM):
                self.component_status[component_name] = ComponentStatus.DEGRADED

        logger.error(f"Error in {component_name}: {error} (Severity: {severity.value})")
        return record

    def mark_healthy(self, component_name: str) -> None:
        """Mark a component healthy after a successful operation."""
        with self._lock:
            previous = self.component_status.get(component_name)
            self.component_status[component_name] = ComponentStatus.HEALTHY
        if previous not in (None, ComponentStatus.HEALTHY):
            logger.info(f"Component {component_name} recovered")

    def get_component_status(self, component_name: str) -> ComponentStatus:
        with self._lock:
            return self.component_status.get(component_name, ComponentStatus.UNKNOWN)

    def get_last_error(self, component_name: Optional[str] = None) -> Optional[ErrorRecord]:
        """Most recent error, optionally restricted to one component."""
        with self._lock:
            for record in reversed(self.error_records):
                if component_name is None or record.component_name == component_name:
                    return record
        return None

    def get_error_stats(self) -> Dict[str, Any]:
        """Get error statistics."""
        with self._lock:
            return {
                "total_errors": sum(self.component_error_counts.values()),
                "component_error_counts": dict(self.component_error_counts),
                "component_status": {name: status.value
                                     for name, status in self.component_status.items()},
                "recent_errors": [
                    {
                        "component": record.component_name,
                        "error": str(record.error),
                        "type": type(record.error).__name__,
                        "severity": record.severity.value,
                        "timestamp": record.timestamp.isoformat()
                    }
                    for record in self.error_records[-10:]
                ]
            }

    def clear(self) -> None:
        """Forget all recorded errors."""
        with self._lock:
            self.error_records.clear()
            for name in self.component_error_counts:
                self.component_error_counts[name] = 0
                self.component_status[name] = ComponentStatus.HEALTHY
