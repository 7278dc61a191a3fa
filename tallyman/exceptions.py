"""
Tallyman Exceptions.

All tallyman errors are wrapped in TallyError for consistent handling.
"""

from typing import Any


class TallyError(Exception):
    """
    Base exception for all Tallyman errors.

    Usage:
        raise TallyError('RECORD_REJECTED', sku_id='abc', status=422)

    Attributes:
        code: Error code (RECORD_CLIENT_UNAVAILABLE, LOCK_NOT_ACQUIRED, etc.)
        details: Additional context as keyword arguments
        result: Partial ReconcileResult of an aborted pass, or None
    """

    def __init__(self, code: str, *, result: Any = None, **details: Any):
        self.code = code
        self.details = details
        self.result = result
        message = f"{code}: {details}" if details else code
        super().__init__(message)

    def as_dict(self) -> dict:
        """Return error as dictionary for API responses."""
        return {"code": self.code, **self.details}

    @property
    def is_unreachable(self) -> bool:
        """True when the call never got an answer from the record service."""
        return self.code in UNREACHABLE_CODES

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"TallyError({self.code}: {details_str})"
        return f"TallyError({self.code})"


# Error codes
# RECORD_CLIENT_UNAVAILABLE: Transport failure talking to the record service
#   (per SKU write: recorded and skipped; every write of a pass or the snapshot load: raised)
# RECORD_REJECTED: Record service answered with a non-2xx status
# RECORD_NOT_FOUND: Record service answered 404
# INVALID_RESPONSE: Body is not JSON or has an unexpected shape
# LOCK_NOT_ACQUIRED: Another reconciliation holds the product lease
# INVALID_INPUT: Product create/edit values are not finite non-negative numbers
# SKUS_NOT_DEPLETED: Archive with the "deplete" policy could not bring every SKU to 0

UNREACHABLE_CODES = frozenset({"RECORD_CLIENT_UNAVAILABLE"})
