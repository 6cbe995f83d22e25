"""Registry error taxonomy.

Every failure an engine operation can report is a ``RegistryError`` carrying
an ``ErrorKind``. All of them are local validation outcomes: the operation
that raised one has left the registry untouched.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorKind(Enum):
    """Stable error codes surfaced to callers."""
    NOT_FOUND = "not_found"
    NOT_OWNER = "not_owner"
    ALREADY_EXISTS = "already_exists"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    OVERFLOW = "overflow"
    SELF_TRANSFER = "self_transfer"
    NOT_FOR_SALE = "not_for_sale"
    BID_TOO_LOW = "bid_too_low"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    BELOW_MINIMUM = "below_minimum"


class RegistryError(Exception):
    """Base class for typed registry failures."""

    kind: ErrorKind

    def __init__(self, message: str = "", **details: Any):
        self.details: Dict[str, Any] = details
        super().__init__(message or self.kind.value)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": str(self), "details": dict(self.details)}


class CourseNotFound(RegistryError):
    """Referenced course id is unknown."""
    kind = ErrorKind.NOT_FOUND


class NotCourseOwner(RegistryError):
    """Caller does not own the course."""
    kind = ErrorKind.NOT_OWNER


class CourseExists(RegistryError):
    """A mint derived an id that is already registered."""
    kind = ErrorKind.ALREADY_EXISTS


class CapacityExceeded(RegistryError):
    """The owner index is already at its maximum length."""
    kind = ErrorKind.CAPACITY_EXCEEDED


class CountOverflow(RegistryError):
    """The course counter would overflow its integer width."""
    kind = ErrorKind.OVERFLOW


class TransferToSelf(RegistryError):
    """Source and destination accounts are the same."""
    kind = ErrorKind.SELF_TRANSFER


class NotForSale(RegistryError):
    """The course has no asking price."""
    kind = ErrorKind.NOT_FOR_SALE


class BidTooLow(RegistryError):
    """The bid is below the asking price."""
    kind = ErrorKind.BID_TOO_LOW


class InsufficientFunds(RegistryError):
    """The paying account cannot cover the amount."""
    kind = ErrorKind.INSUFFICIENT_FUNDS


class BelowMinimum(RegistryError):
    """The payment would leave the payer under the ledger's minimum balance."""
    kind = ErrorKind.BELOW_MINIMUM


__all__ = [
    "ErrorKind",
    "RegistryError",
    "CourseNotFound",
    "NotCourseOwner",
    "CourseExists",
    "CapacityExceeded",
    "CountOverflow",
    "TransferToSelf",
    "NotForSale",
    "BidTooLow",
    "InsufficientFunds",
    "BelowMinimum",
]
