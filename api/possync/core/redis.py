import logging
import uuid
from contextlib import contextmanager
from collections.abc import Callable, Iterator

import redis
from redis.exceptions import LockError

from possync.core.config import settings
from possync.core.errors import SyncInProgress

logger = logging.getLogger(__name__)

# Shared sync Redis client (workers are synchronous Celery processes)
_redis: redis.Redis | None = None


def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


# ─── Per-tenant sync lock ──────────────────────────────────────────────────────

_LOCK_PREFIX = "possync:sync-lock:"


def tenant_lock_key(tenant_id: uuid.UUID) -> str:
    return f"{_LOCK_PREFIX}{tenant_id}"


@contextmanager
def tenant_lock(tenant_id: uuid.UUID, timeout: int | None = None) -> Iterator[Callable[[], None]]:
    """Hold the tenant's exclusive sync lock for the duration of the block.

    Scoped and full runs for one tenant both delete and insert ledger rows,
    so they must never overlap. The lock expires after ``timeout`` seconds so
    a killed worker cannot wedge a tenant forever.

    Yields a keepalive that resets the TTL to ``timeout``. Long runs call it
    between phases; it raises SyncInProgress once the lock has already expired,
    since another run may own it by then.

    Raises SyncInProgress without waiting if another run holds the lock.
    """
    lock = get_redis().lock(
        tenant_lock_key(tenant_id),
        timeout=timeout or settings.tenant_lock_timeout_seconds,
        blocking=False,
    )
    if not lock.acquire(blocking=False):
        raise SyncInProgress(tenant_id)

    def keepalive() -> None:
        try:
            lock.reacquire()
        except LockError as exc:
            logger.error("Sync lock for tenant %s expired mid-run", tenant_id)
            raise SyncInProgress(tenant_id) from exc

    try:
        yield keepalive
    finally:
        try:
            lock.release()
        except LockError as exc:
            # Expired mid-run; another worker may already own it now
            logger.warning("Sync lock for tenant %s was lost before release: %s", tenant_id, exc)
