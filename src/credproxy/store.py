"""
Key-value storage backends for credproxy.

Every record the service keeps (projects, encrypted secrets, API configs,
OAuth metadata, request logs) is a string value under a namespaced key.
Keys may carry a time-to-live, after which they behave as if deleted.
"""

import asyncio
import json
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from platformdirs import user_data_dir


# Seconds between sweeps for expired keys triggered by writes.
PURGE_INTERVAL = 60

class KeyValueStore(Protocol):
    """
    Interface shared by all storage backends.
    """

    async def get(self, key: str) -> Optional[str]: ...

    async def put(
        self, key: str, value: str, expiration_ttl: Optional[int] = None
    ) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list(
        self, prefix: str = "", limit: Optional[int] = None
    ) -> list[str]: ...


class MemoryStore:
    """
    In-process store. Data is lost when the process exits.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        # key -> (value, expires_at or None)
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._next_purge = clock() + PURGE_INTERVAL

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and expires_at <= self._clock()

    def _expiry(self, expiration_ttl: Optional[int]) -> Optional[float]:
        if expiration_ttl is None:
            return None
        return self._clock() + expiration_ttl

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._data[key]
            return None
        return value

    async def put(
        self, key: str, value: str, expiration_ttl: Optional[int] = None
    ) -> None:
        self._data[key] = (value, self._expiry(expiration_ttl))
        if self._clock() >= self._next_purge:
            self._purge_expired()

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list(
        self, prefix: str = "", limit: Optional[int] = None
    ) -> list[str]:
        """
        Return live key names starting with prefix, in sorted order.

        Expired entries are purged from the whole store as a side effect.
        """
        self._purge_expired()
        names = sorted(key for key in self._data if key.startswith(prefix))
        if limit is not None:
            names = names[:limit]
        return names

    def _purge_expired(self):
        self._next_purge = self._clock() + PURGE_INTERVAL
        expired = [
            key
            for key, (_, expires_at) in self._data.items()
            if self._expired(expires_at)
        ]
        for key in expired:
            del self._data[key]


def default_store_path() -> Path:
    """
    Get the platform-specific data file used by the file backend.
    """
    data_dir = Path(user_data_dir("credproxy", "credproxy"))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / "store.json"


class JsonFileStore(MemoryStore):
    """
    Store persisted to a single JSON file.

    The whole file is rewritten on every change, in a worker thread.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(clock=clock)
        self.path = Path(path) if path else default_store_path()
        self._write_lock = asyncio.Lock()
        self._load()

    def _load(self):
        if not self.path.exists():
            return

        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        for key, record in raw.items():
            expires_at = record.get("expires_at")
            if not self._expired(expires_at):
                self._data[key] = (record["value"], expires_at)

    def _snapshot(self) -> dict[str, dict]:
        self._purge_expired()
        return {
            key: {"value": value, "expires_at": expires_at}
            for key, (value, expires_at) in self._data.items()
        }

    def _write(self, raw: dict[str, dict]):
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(raw, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)

    async def _save(self):
        """
        Write a snapshot of the store to disk off the event loop.

        Writes are serialized so an older snapshot never replaces a newer one.
        """
        async with self._write_lock:
            await asyncio.to_thread(self._write, self._snapshot())

    async def put(
        self, key: str, value: str, expiration_ttl: Optional[int] = None
    ) -> None:
        await super().put(key, value, expiration_ttl)
        await self._save()

    async def delete(self, key: str) -> None:
        await super().delete(key)
        await self._save()


def create_store(store_config: dict) -> MemoryStore:
    """
    Build the storage backend named in the "store" config section.

    Raises ValueError for an unknown backend name.
    """
    backend = store_config.get("backend", "file")

    if backend == "memory":
        return MemoryStore()
    if backend == "file":
        path = store_config.get("path")
        return JsonFileStore(Path(path) if path else None)

    raise ValueError(f"Unknown store backend: {backend}")
