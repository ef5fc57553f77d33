# zork_app/utils/locks.py
"""Per-key mutual exclusion used to serialize work on a single conversation."""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from redis.exceptions import LockError, RedisError

from ..exceptions import ConversationBusyError

logger = logging.getLogger(__name__)


class LocalKeyedLock:
    """
    One ``threading.Lock`` per key, created on demand and dropped when the last
    holder or waiter leaves. Only serializes threads of the current process.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            acquired = lock.acquire(timeout=self.timeout) if self.timeout else lock.acquire()
            if not acquired:
                raise ConversationBusyError(f"Otra solicitud está usando la conversación ({key}).")
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                self._users[key] -= 1
                if not self._users[key]:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class RedisKeyedLock:
    """
    Redis lock per key so that several worker processes share the same
    serialization. ``timeout`` bounds how long a crashed holder keeps the lock;
    ``blocking_timeout`` bounds how long a caller waits for it.
    """

    def __init__(self, redis_client, timeout: float = 270, blocking_timeout: float = 270, prefix: str = "lock:"):
        self.redis = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout
        self.prefix = prefix

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock_key = f"{self.prefix}{key}"
        lock = self.redis.lock(lock_key, timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        try:
            acquired = lock.acquire()
        except RedisError as e:
            logger.error(f"Redis error acquiring {lock_key}: {e}")
            raise ConversationBusyError("No se pudo obtener el bloqueo de la conversación.", detail=str(e)) from e
        if not acquired:
            logger.warning(f"Timed out waiting for {lock_key} after {self.blocking_timeout}s.")
            raise ConversationBusyError(f"Otra solicitud está usando la conversación ({key}).")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Expired while held; the next holder already owns it.
                logger.warning(f"Lock {lock_key} expired before release: {e}")
