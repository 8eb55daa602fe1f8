"""
Convocate - Utilities
Memory monitoring and client identity.
"""

from .memory import MemoryMonitor
from .identity import get_client_id

__all__ = ["MemoryMonitor", "get_client_id"]
