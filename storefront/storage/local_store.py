"""
Durable key-value storage for the anonymous cart.

Mirrors browser local storage: string keys, string values, synchronous
calls. Three implementations:
- FileStorage   one file per key under a directory (default for CLI use)
- RedisStorage  namespaced keys in Redis ({namespace}:{key}), no TTL
- MemoryStorage process-local dict (tests, throwaway sessions)
"""

import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import redis

from storefront.errors import StorageError
from storefront.utils.logger import get_logger

logger = get_logger("storage")

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStorage(ABC):
    """Synchronous string store; a missing key reads as None, failures raise StorageError."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        ...


class MemoryStorage(KeyValueStorage):

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value

    def remove_item(self, key: str) -> None:
        self.items.pop(key, None)


class FileStorage(KeyValueStorage):
    """
    Stores each key as <directory>/<key>.json.

    Writes go to a temp file in the same directory and are moved into place,
    so a crash mid-write never leaves a half-written cart behind.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{_SAFE_KEY.sub('_', key)}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp, path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StorageError(f"Cannot write {path}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Cannot remove {key}: {e}") from e


class RedisStorage(KeyValueStorage):
    """
    Redis-backed storage, for carts that must survive across machines
    sharing one anonymous session id.

    Args:
        url: redis:// or rediss:// URL
        namespace: key prefix, e.g. "storefront:session-abc"
    """

    def __init__(self, url: str, namespace: str = "storefront", client: Optional[redis.Redis] = None):
        self.namespace = namespace
        self.client = client or redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )

    def _key(self, key: str) -> str:
        """Prefix key with namespace."""
        return f"{self.namespace}:{key}"

    def ping(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False

    def get_item(self, key: str) -> Optional[str]:
        try:
            return self.client.get(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Redis read failed for {key}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        try:
            self.client.set(self._key(key), value)
        except redis.RedisError as e:
            raise StorageError(f"Redis write failed for {key}: {e}") from e

    def remove_item(self, key: str) -> None:
        try:
            self.client.delete(self._key(key))
        except redis.RedisError as e:
            raise StorageError(f"Redis delete failed for {key}: {e}") from e


def create_storage(config) -> KeyValueStorage:
    """Build the storage named by config.storage_backend."""
    if config.storage_backend == "memory":
        return MemoryStorage()
    if config.storage_backend == "redis":
        logger.info(f"Using Redis cart storage at {config.redis_url}")
        return RedisStorage(config.redis_url)
    directory = config.resolved_storage_dir()
    logger.info(f"Using file cart storage in {directory}")
    return FileStorage(directory)
