"""
Secret Storage — Key-addressed string stores with change notifications.

The Vault persists its whole document under a single key of a
``SecretStorage``. Implementations:

- ``MemoryStorage`` — in-process dict; every write notifies listeners, so
  several Vaults sharing one storage observe each other's writes.
- ``FileStorage`` — a JSON document on disk, written atomically
  (temp file + rename). ``poll()`` detects writes made by other processes.

Security Note:
    Values are stored as given (no encryption at rest). Never log values.
"""
import os
import contextlib
import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional, Union

import orjson

from ..exceptions import StorageIOError

logger = logging.getLogger("navigator.secrets")

ChangeListener = Callable[[str], Any]


class SecretStorage(ABC):
    """Abstract persistent string store."""

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def store(self, key: str, value: str) -> None:
        """Store ``value`` under ``key`` (whole value replace)."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""

    def on_did_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener called with the changed key.

        Returns:
            Callable removing the listener.
        """
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return dispose

    def fire_change(self, key: str) -> None:
        for listener in list(self._listeners):
            listener(key)


class MemoryStorage(SecretStorage):
    """Process-local storage."""

    def __init__(self, data: Optional[dict[str, str]] = None) -> None:
        super().__init__()
        self._data: dict[str, str] = dict(data or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def store(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("Storage values must be strings")
        self._data[key] = value
        self.fire_change(key)

    async def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self.fire_change(key)


class FileStorage(SecretStorage):
    """Storage backed by one JSON file of ``{key: value}`` strings."""

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path).expanduser()
        self._snapshot: dict[str, str] = {}

    # ------------------------------------------------------------------
    # File helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, str]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as err:
            raise StorageIOError(f"Cannot read {self.path}: {err}") from err
        if not raw.strip():
            return {}
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise StorageIOError(f"Corrupted storage file {self.path}: {err}") from err
        if not isinstance(data, dict):
            raise StorageIOError(f"Corrupted storage file {self.path}")
        return data

    def _write(self, data: dict[str, str]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as err:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise StorageIOError(f"Cannot write {self.path}: {err}") from err

    def _load(self) -> dict[str, str]:
        data = self._read()
        self._snapshot = dict(data)
        return data

    def _save(self, data: dict[str, str]) -> None:
        self._write(data)
        self._snapshot = dict(data)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._load)
        return data.get(key)

    async def store(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("Storage values must be strings")
        data = await asyncio.to_thread(self._read)
        data[key] = value
        await asyncio.to_thread(self._save, data)
        logger.debug("Storage write: file=%s key=%s", self.path, key)
        self.fire_change(key)

    async def delete(self, key: str) -> None:
        data = await asyncio.to_thread(self._read)
        if key not in data:
            return
        del data[key]
        await asyncio.to_thread(self._save, data)
        self.fire_change(key)

    async def poll(self) -> list[str]:
        """Fire change events for keys rewritten by another process.

        Returns:
            Keys whose value changed since the last read or write.
        """
        previous = self._snapshot
        current = await asyncio.to_thread(self._load)
        changed = [
            key for key in previous.keys() | current.keys()
            if previous.get(key) != current.get(key)
        ]
        for key in sorted(changed):
            self.fire_change(key)
        if changed:
            logger.info("Storage %s changed externally: %s", self.path, sorted(changed))
        return sorted(changed)
