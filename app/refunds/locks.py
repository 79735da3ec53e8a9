"""
Per-order locking for refund processing.

Refund processing calls Stripe and then writes several rows, so a database
row lock alone cannot serialize it: the Stripe call must not run inside an
open transaction. A Redis lock keyed by order ID is held for the whole flow
instead, and the order row is additionally locked with select_for_update
while the order aggregate is updated.

Usage:
    from refunds.locks import DistributedLock, order_refund_lock_key

    with DistributedLock(order_refund_lock_key(order_id), ttl=120, timeout=10):
        ...
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from refunds.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


def order_refund_lock_key(order_id: Any) -> str:
    """Lock key shared by everything that refunds a given order."""
    return f"refund:order:{order_id}"


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed workers
        - Token-based ownership prevents release by another holder
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Example:
        with DistributedLock("refund:order:123", ttl=120):
            process_refund()

        lock = DistributedLock("refund:order:123", blocking=False)
        try:
            with lock:
                process_refund()
        except LockAcquisitionError:
            return conflict_response()

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Atomic check-and-delete
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Atomic check-and-extend
    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    RETRY_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: If the lock could not be acquired
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.monotonic() + self.timeout
            while True:
                if redis.set(self.key, token, nx=True, ex=self.ttl):
                    self._token = token
                    return True
                if time.monotonic() >= end_time:
                    break
                time.sleep(self.RETRY_INTERVAL)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Safe to call more than once.
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """Reset the TTL (to additional_ttl or the original TTL) if held."""
        if self._token is None:
            return False

        ttl = additional_ttl or self.ttl
        redis = self._get_redis()
        return bool(redis.eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl))

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


__all__ = [
    "DistributedLock",
    "order_refund_lock_key",
]
