"""Host resource readings for the health endpoint."""

from datetime import datetime
from typing import Dict, Any

import psutil

from ..logging_config import get_logger

logger = get_logger("system_monitor")


class SystemMonitor:
    """Reads CPU, memory and temperature through psutil."""

    def get_cpu_usage(self) -> float:
        """Get current CPU usage percentage."""
        try:
            return psutil.cpu_percent(interval=0.1)
        except Exception as e:
            logger.error(f"Error getting CPU usage: {e}")
            return 0.0

    def get_memory_usage(self) -> float:
        """Get current memory usage percentage."""
        try:
            return psutil.virtual_memory().percent
        except Exception as e:
            logger.error(f"Error getting memory usage: {e}")
            return 0.0

    def get_temperature(self) -> float:
        """Get system temperature in Celsius, 0.0 when no sensor is exposed."""
        sensors = getattr(psutil, "sensors_temperatures", None)
        if sensors is None:
            return 0.0

        try:
            temps = sensors()
            if not temps:
                return 0.0

            for name, entries in temps.items():
                if name.lower() in ('cpu_thermal', 'coretemp', 'cpu') and entries:
                    return max(entry.current for entry in entries)

            return max(entry.current for entries in temps.values() for entry in entries)

        except Exception as e:
            logger.error(f"Error getting temperature: {e}")
            return 0.0

    def get_system_stats(self) -> Dict[str, Any]:
        return {
            "cpu_usage": self.get_cpu_usage(),
            "memory_usage": self.get_memory_usage(),
            "temperature": self.get_temperature(),
            "last_updated": datetime.now().isoformat()
        }
