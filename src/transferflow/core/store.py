"""
TransferFlow persisted state store.

A durable key-value store that survives restarts of the client. One store
instance corresponds to one storage scope; there is no coordination between
processes sharing a scope.
"""

from __future__ import annotations

import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from transferflow.core.logging import get_logger

logger = get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class StateStore(ABC):
    """Key-value store for serialized state records."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a value. Removing an absent key is a no-op."""

    def contains(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStateStore(StateStore):
    """In-process store, lost when the process exits."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)


class FileStateStore(StateStore):
    """Store keeping one file per key inside a scope directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid state key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Readers never observe a partially written record
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

    def remove(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            path.unlink(missing_ok=True)
        logger.debug("State record removed", key=key)
