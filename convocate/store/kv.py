"""
Convocate - Key-Value Store
The one place shared mutable state lives. Everything above it goes through
these atomic operations, so a networked store can replace the in-memory one.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Optional, Tuple


class KeyValueStore(ABC):
    """Minimal atomic key-value interface used by the ledger and result cache."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def set_if_absent(self, key: str, value: Any) -> bool:
        """Store value only if key is unset. Returns True when it was stored."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def pop(self, key: str) -> Optional[Any]:
        """Remove and return a value in one step; None if absent."""

    @abstractmethod
    def increment(self, key: str, field: str, amount: int = 1,
                  ceiling: Optional[int] = None) -> Optional[int]:
        """
        Add amount to a numeric field of a dict value, creating both as needed.

        Returns the new value, or None (and changes nothing) when the result
        would exceed ceiling.
        """

    @abstractmethod
    def scan(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        """Snapshot of (key, value) pairs whose key starts with prefix."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class InMemoryStore(KeyValueStore):
    """Process-local store: a dict behind a lock. Lost on restart."""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._data.get(key)
            return dict(value) if isinstance(value, dict) else value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def set_if_absent(self, key: str, value: Any) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def pop(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.pop(key, None)

    def increment(self, key: str, field: str, amount: int = 1,
                  ceiling: Optional[int] = None) -> Optional[int]:
        with self._lock:
            record = self._data.get(key)
            if not isinstance(record, dict):
                record = {}
            new_value = record.get(field, 0) + amount
            if ceiling is not None and new_value > ceiling:
                return None
            record = dict(record)
            record[field] = new_value
            self._data[key] = record
            return new_value

    def scan(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        with self._lock:
            items = [(k, v) for k, v in self._data.items() if k.startswith(prefix)]
        return iter(items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
