"""Per-serial scan locks.

At most one scan per tracked serial may be in flight: the dedupe check and
the detection insert are separate steps, so two concurrent scans of the same
serial could otherwise race on the same URL.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional
from uuid import uuid4

import redis.asyncio as redis

from ncc_monitor.config import Settings
from ncc_monitor.errors import ScanInProgressError

logger = logging.getLogger(__name__)

LOCK_KEY_TEMPLATE = "scan:serial:{serial_id}:lock"

# Delete the key only if the stored token matches
RELEASE_SCRIPT = """
local lock_value = redis.call('GET', KEYS[1])
if not lock_value then
    return 0
end

local cjson = require('cjson')
local success, data = pcall(cjson.decode, lock_value)
if not success then
    return 2
end

if data.token == ARGV[1] then
    redis.call('DEL', KEYS[1])
    return 1
end
return 2
"""


class SerialScanLock(ABC):
    """Serializes scans per tracked serial."""

    def __init__(self, wait_seconds: float = 30.0):
        self.wait_seconds = wait_seconds

    @asynccontextmanager
    async def hold(self, serial_id: int) -> AsyncIterator[None]:
        """
        Hold the scan lock for a serial for the duration of the block.

        Raises:
            ScanInProgressError: If the lock is not acquired within wait_seconds
        """
        token = await self.acquire(serial_id)
        if token is None:
            raise ScanInProgressError(serial_id)
        try:
            yield
        finally:
            await self.release(serial_id, token)

    @abstractmethod
    async def acquire(self, serial_id: int) -> Optional[str]:
        """Acquire the lock, returning an ownership token or None on timeout."""

    @abstractmethod
    async def release(self, serial_id: int, token: str) -> bool:
        ...

    async def close(self):
        """Release backend resources."""


class LocalScanLock(SerialScanLock):
    """In-process locks, one asyncio.Lock per serial.

    A serial's lock is dropped once nobody holds or waits for it.
    """

    def __init__(self, wait_seconds: float = 30.0):
        super().__init__(wait_seconds)
        self._locks: dict[int, asyncio.Lock] = {}
        # Holders plus waiters per serial
        self._users: dict[int, int] = {}

    def _lock_for(self, serial_id: int) -> asyncio.Lock:
        lock = self._locks.get(serial_id)
        if lock is None:
            lock = self._locks[serial_id] = asyncio.Lock()
        return lock

    def _leave(self, serial_id: int) -> None:
        remaining = self._users.get(serial_id, 0) - 1
        if remaining > 0:
            self._users[serial_id] = remaining
            return
        self._users.pop(serial_id, None)
        self._locks.pop(serial_id, None)

    async def acquire(self, serial_id: int) -> Optional[str]:
        lock = self._lock_for(serial_id)
        self._users[serial_id] = self._users.get(serial_id, 0) + 1
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
        except asyncio.TimeoutError:
            self._leave(serial_id)
            logger.warning(f"Timed out waiting for scan lock on serial {serial_id}")
            return None
        except asyncio.CancelledError:
            self._leave(serial_id)
            raise
        return uuid4().hex

    async def release(self, serial_id: int, token: str) -> bool:
        lock = self._locks.get(serial_id)
        if lock is None or not lock.locked():
            return False
        lock.release()
        self._leave(serial_id)
        return True

    def is_locked(self, serial_id: int) -> bool:
        lock = self._locks.get(serial_id)
        return lock is not None and lock.locked()

    @property
    def tracked_serials(self) -> int:
        """Number of serials with a live lock entry."""
        return len(self._locks)


class RedisScanLock(SerialScanLock):
    """
    Redis locks shared by every process pointed at the same Redis.

    Features:
    - TTL-based expiration so a crashed worker cannot hold a serial forever
    - Token-based ownership verification on release
    """

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = 600,
        wait_seconds: float = 30.0,
        poll_interval: float = 0.5,
    ):
        super().__init__(wait_seconds)
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.poll_interval = poll_interval
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get or create Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._redis

    async def close(self):
        """Close Redis connection."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def acquire(self, serial_id: int) -> Optional[str]:
        redis_client = await self._get_redis()
        key = LOCK_KEY_TEMPLATE.format(serial_id=serial_id)
        token = uuid4().hex
        lock_value = json.dumps({
            "serial_id": serial_id,
            "token": token,
            "started_at": datetime.utcnow().isoformat(),
        })

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait_seconds
        while True:
            acquired = await redis_client.set(key, lock_value, nx=True, ex=self.ttl_seconds)
            if acquired:
                logger.debug(f"Acquired scan lock for serial {serial_id}")
                return token
            if loop.time() >= deadline:
                logger.warning(f"Timed out waiting for scan lock on serial {serial_id}")
                return None
            await asyncio.sleep(self.poll_interval)

    async def release(self, serial_id: int, token: str) -> bool:
        redis_client = await self._get_redis()
        key = LOCK_KEY_TEMPLATE.format(serial_id=serial_id)
        try:
            result = await redis_client.eval(RELEASE_SCRIPT, 1, key, token)
        except redis.RedisError as e:
            logger.error(f"Failed to release scan lock for serial {serial_id}: {e}")
            return False

        if result == 2:
            logger.warning(f"Scan lock for serial {serial_id} is held by another token")
            return False
        return True

    async def get_lock_info(self, serial_id: int) -> Optional[dict]:
        """Return the stored lock payload, if any."""
        redis_client = await self._get_redis()
        value = await redis_client.get(LOCK_KEY_TEMPLATE.format(serial_id=serial_id))
        if not value:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None


def build_scan_lock(settings: Settings) -> SerialScanLock:
    """Choose the scan lock backend once, at process start."""
    backend = settings.scan_lock_backend.lower()
    if backend == "redis":
        logger.info("Scan lock backend: redis")
        return RedisScanLock(
            settings.redis_url,
            ttl_seconds=settings.scan_lock_ttl_seconds,
            wait_seconds=settings.scan_lock_wait_seconds,
        )
    if backend != "local":
        raise ValueError(f"Unknown scan lock backend: {settings.scan_lock_backend}")
    logger.info("Scan lock backend: local")
    return LocalScanLock(wait_seconds=settings.scan_lock_wait_seconds)
