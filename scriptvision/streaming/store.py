"""
State store for sessions and generation locks.

Records are JSON-compatible dicts grouped by namespace. Every write stamps
the record with `touched_at` so stale entries can be listed and collected.

Two interchangeable backends:
- InMemoryStateStore: single process, single event loop
- RedisStateStore: shared across processes/instances (redis.asyncio)
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from scriptvision.core.config import StoreConfig
from scriptvision.core.constants import StoreBackend
from scriptvision.core.exceptions import InvalidConfigError, MissingConfigError, StoreError
from scriptvision.core.logging_config import get_logger

logger = get_logger("streaming.store")

Clock = Callable[[], float]

TOUCHED_AT = "touched_at"


class StateStore(ABC):
    """Keyed record store used by the session and lock managers."""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def _stamp(self, value: Dict[str, Any]) -> Dict[str, Any]:
        record = dict(value)
        record[TOUCHED_AT] = self.now()
        return record

    @abstractmethod
    async def get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        """Return the record or None."""

    @abstractmethod
    async def set(self, namespace: str, key: str, value: Dict[str, Any], ttl: Optional[float] = None) -> None:
        """Create or replace a record."""

    @abstractmethod
    async def set_if_absent(self, namespace: str, key: str, value: Dict[str, Any],
                            ttl: Optional[float] = None) -> bool:
        """Create a record only if the key is free. Returns True if created."""

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> bool:
        """Remove a record. Returns True if it existed."""

    @abstractmethod
    async def keys(self, namespace: str) -> List[str]:
        """All keys in a namespace."""

    async def list_stale(self, namespace: str, max_age: float) -> List[str]:
        """Keys whose records were last touched more than max_age seconds ago."""
        cutoff = self.now() - max_age
        stale = []
        for key in await self.keys(namespace):
            record = await self.get(namespace, key)
            if record is not None and record.get(TOUCHED_AT, 0) < cutoff:
                stale.append(key)
        return stale

    async def count(self, namespace: str) -> int:
        return len(await self.keys(namespace))

    async def close(self) -> None:
        pass


class InMemoryStateStore(StateStore):
    """
    Process-local store.

    Safe under a single event loop because no method awaits between its
    read and its write.
    """

    def __init__(self, clock: Clock = time.time):
        super().__init__(clock)
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._expiry: Dict[str, Dict[str, float]] = {}

    def _bucket(self, namespace: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(namespace, {})

    def _expire(self, namespace: str, key: str) -> None:
        deadline = self._expiry.get(namespace, {}).get(key)
        if deadline is not None and deadline <= self.now():
            self._bucket(namespace).pop(key, None)
            self._expiry[namespace].pop(key, None)

    def _write(self, namespace: str, key: str, value: Dict[str, Any], ttl: Optional[float]) -> None:
        self._bucket(namespace)[key] = self._stamp(value)
        expiry = self._expiry.setdefault(namespace, {})
        if ttl:
            expiry[key] = self.now() + ttl
        else:
            expiry.pop(key, None)

    async def get(self, namespace, key):
        self._expire(namespace, key)
        record = self._bucket(namespace).get(key)
        return dict(record) if record is not None else None

    async def set(self, namespace, key, value, ttl=None):
        self._write(namespace, key, value, ttl)

    async def set_if_absent(self, namespace, key, value, ttl=None):
        self._expire(namespace, key)
        if key in self._bucket(namespace):
            return False
        self._write(namespace, key, value, ttl)
        return True

    async def delete(self, namespace, key):
        self._expiry.get(namespace, {}).pop(key, None)
        return self._bucket(namespace).pop(key, None) is not None

    async def keys(self, namespace):
        for key in list(self._bucket(namespace)):
            self._expire(namespace, key)
        return list(self._bucket(namespace))


class RedisStateStore(StateStore):
    """
    Redis-backed store for multi-instance deployments.

    Keys are laid out as "{prefix}:{namespace}:{key}" with JSON values.
    """

    def __init__(self, client: "aioredis.Redis", key_prefix: str = "scriptvision", clock: Clock = time.time):
        super().__init__(clock)
        self._redis = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "scriptvision") -> "RedisStateStore":
        return cls(aioredis.from_url(url, decode_responses=True), key_prefix=key_prefix)

    def _key(self, namespace: str, key: str) -> str:
        return f"{self._prefix}:{namespace}:{key}"

    @staticmethod
    def _ttl(ttl: Optional[float]) -> Optional[int]:
        return max(1, int(ttl)) if ttl else None

    async def get(self, namespace, key):
        try:
            raw = await self._redis.get(self._key(namespace, key))
        except RedisError as e:
            raise StoreError(f"Redis get failed: {e}", {"namespace": namespace, "key": key})
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def set(self, namespace, key, value, ttl=None):
        payload = json.dumps(self._stamp(value))
        try:
            await self._redis.set(self._key(namespace, key), payload, ex=self._ttl(ttl))
        except RedisError as e:
            raise StoreError(f"Redis set failed: {e}", {"namespace": namespace, "key": key})

    async def set_if_absent(self, namespace, key, value, ttl=None):
        payload = json.dumps(self._stamp(value))
        try:
            created = await self._redis.set(self._key(namespace, key), payload, ex=self._ttl(ttl), nx=True)
        except RedisError as e:
            raise StoreError(f"Redis set failed: {e}", {"namespace": namespace, "key": key})
        return bool(created)

    async def delete(self, namespace, key):
        try:
            removed = await self._redis.delete(self._key(namespace, key))
        except RedisError as e:
            raise StoreError(f"Redis delete failed: {e}", {"namespace": namespace, "key": key})
        return removed > 0

    async def keys(self, namespace):
        prefix = self._key(namespace, "")
        found = []
        try:
            async for raw in self._redis.scan_iter(match=f"{prefix}*"):
                name = raw.decode("utf-8") if isinstance(raw, bytes) else raw
                found.append(name[len(prefix):])
        except RedisError as e:
            raise StoreError(f"Redis scan failed: {e}", {"namespace": namespace})
        return found

    async def close(self):
        await self._redis.aclose()


def create_store(config: Optional[StoreConfig] = None) -> StateStore:
    """Build the configured state store backend."""
    config = config or StoreConfig()
    backend = config.backend

    if backend == StoreBackend.MEMORY.value:
        logger.info("Using in-memory state store")
        return InMemoryStateStore()

    if backend == StoreBackend.REDIS.value:
        if not config.redis_url:
            raise MissingConfigError("store.redis_url (or REDIS_URL) is required for the redis backend")
        logger.info(f"Using Redis state store (prefix '{config.key_prefix}')")
        return RedisStateStore.from_url(config.redis_url, key_prefix=config.key_prefix)

    raise InvalidConfigError(f"Unknown store backend: {backend}")
