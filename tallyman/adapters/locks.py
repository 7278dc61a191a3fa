"""
Lock backends -- per-product advisory leases.

CacheLock relies on ``cache.add()``, which only stores a key that is not
already present; the cache timeout is the lease. Use a cache shared by all
processes (Redis, Memcached, database cache) when more than one worker can
reconcile the same product. LocMemCache only serialises within a process.

Configuration:
    TALLYMAN = {
        "LOCK_BACKEND": "tallyman.adapters.locks.CacheLock",
        "LOCK_CACHE_ALIAS": "default",
    }
"""

from __future__ import annotations

import logging
import uuid

from django.core.cache import caches

from tallyman.conf import get_setting

logger = logging.getLogger(__name__)

KEY_PREFIX = "tallyman:lock:"


class CacheLock:
    """LockBackend backed by a Django cache."""

    def __init__(self, alias: str | None = None):
        self.alias = alias or get_setting("LOCK_CACHE_ALIAS")

    @property
    def cache(self):
        return caches[self.alias]

    def acquire(self, key: str, timeout: int) -> str | None:
        token = uuid.uuid4().hex
        if self.cache.add(f"{KEY_PREFIX}{key}", token, timeout=timeout):
            logger.debug(f"Acquired lease {key} for {timeout}s")
            return token
        return None

    def release(self, key: str, token: str) -> bool:
        cache_key = f"{KEY_PREFIX}{key}"
        # Not atomic: a lease that expires between get and delete can be
        # deleted after someone else took it. Keep LOCK_TIMEOUT well above
        # the duration of a pass.
        if self.cache.get(cache_key) != token:
            logger.warning(f"Lease {key} expired or was taken over before release")
            return False
        self.cache.delete(cache_key)
        return True


class NoopLock:
    """
    LockBackend that always grants the lease.

    For single-editor deployments that still want the orchestrator to go
    through the locking step.
    """

    def acquire(self, key: str, timeout: int) -> str | None:
        return "noop"

    def release(self, key: str, token: str) -> bool:
        return True
