"""
Convocate - Memory Monitoring
Process and system RAM, plus how much state the in-memory stores are holding.
"""

import os
import psutil
from typing import Dict, Any, Optional

from ..store.kv import KeyValueStore


class MemoryMonitor:
    """
    Monitors system RAM and this process's footprint.

    Everything the service remembers (quota counters, pending scores,
    in-flight turns) lives in process memory, so the store size is reported
    next to RSS.
    """

    def __init__(self, max_ram_percent: float = 85.0, store: Optional[KeyValueStore] = None):
        """
        Initialize memory monitor.

        Args:
            max_ram_percent: System RAM usage above which a warning is reported.
            store: Optional store whose entry count is included in the status.
        """
        self.max_ram_percent = max_ram_percent
        self.store = store
        self._process = psutil.Process(os.getpid())

    def get_ram_info(self) -> Dict[str, float]:
        """Get current RAM usage information."""
        mem = psutil.virtual_memory()
        return {
            "total_gb": mem.total / (1024 ** 3),
            "used_gb": mem.used / (1024 ** 3),
            "available_gb": mem.available / (1024 ** 3),
            "percent": mem.percent
        }

    def get_process_info(self) -> Dict[str, float]:
        info = self._process.memory_info()
        return {
            "rss_mb": info.rss / (1024 ** 2),
            "vms_mb": info.vms / (1024 ** 2),
            "threads": self._process.num_threads()
        }

    def get_status(self) -> Dict[str, Any]:
        """Get complete memory status."""
        ram = self.get_ram_info()
        process = self.get_process_info()

        status = {
            "ram": {
                "total_gb": round(ram["total_gb"], 2),
                "used_gb": round(ram["used_gb"], 2),
                "available_gb": round(ram["available_gb"], 2),
                "percent": round(ram["percent"], 1)
            },
            "process": {
                "rss_mb": round(process["rss_mb"], 1),
                "vms_mb": round(process["vms_mb"], 1),
                "threads": process["threads"]
            },
            "store": {"entries": len(self.store)} if self.store is not None else None,
            "warnings": []
        }

        if ram["percent"] > self.max_ram_percent:
            status["warnings"].append(f"RAM usage ({ram['percent']:.1f}%) exceeds threshold ({self.max_ram_percent}%)")

        return status

    def get_memory_mb(self) -> int:
        """Get this process's resident memory in MB (for logging)."""
        return int(self._process.memory_info().rss / (1024 ** 2))
