"""
Lock Protocol -- Interface for per-product advisory locks.

The orchestrator takes a lease on a product before loading its snapshot so
two editors cannot interleave reconciliation passes on the same SKU set.
Leases expire on their own; a crashed holder never blocks a product forever.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class LockBackend(Protocol):
    """
    Protocol for advisory leases.

    Implementations:
        - CacheLock: Django cache ``add()`` with a timeout
        - NoopLock: Always grants the lease (single editor deployments)
    """

    def acquire(self, key: str, timeout: int) -> str | None:
        """
        Try to take the lease for ``key``.

        Args:
            key: Lock name (e.g. "product:42")
            timeout: Lease length in seconds

        Returns:
            An opaque token when granted, None when someone else holds it
        """
        ...

    def release(self, key: str, token: str) -> bool:
        """
        Give the lease back.

        Only the holder of ``token`` may release; a lease that already
        expired (or was taken by someone else) is left alone.

        Returns:
            True if the lease was released
        """
        ...
