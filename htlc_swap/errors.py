"""
Error taxonomy for htlc-swap.

Adapters raise these instead of returning success=False results. Batch
redemption is the only place where failures are collected per entry.
"""

from typing import Any, Optional


class HTLCError(Exception):
    """Base class for all protocol errors."""

    def __init__(self, message: str, tx: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tx = tx

    def __str__(self) -> str:
        if self.tx:
            return f"{self.message} (tx={self.tx})"
        return self.message


class InvalidArgument(HTLCError):
    """Malformed amount, mismatched batch arrays, bad lock duration..."""


class ContractRevert(HTLCError):
    """Transaction was rejected by contract logic."""


class EstimationFailure(ContractRevert):
    """Dry-run of the call reverted before anything was submitted."""


class NotFound(HTLCError):
    """No matching commitment log in the queried transaction."""


class DecodeError(HTLCError):
    """A matching log entry carried a malformed payload."""


class Timeout(HTLCError):
    """
    A confirmation wait passed its deadline.

    `handle` identifies the submitted transaction so it can be re-checked;
    `result` is the partially known LockResult when a lock timed out.
    """

    def __init__(self, message: str, handle: Any = None, tx: Optional[str] = None,
                 result: Any = None):
        super().__init__(message, tx=tx)
        self.handle = handle
        self.result = result


class InvalidState(HTLCError):
    """Commitment state transition refused."""


class ProtocolViolation(HTLCError):
    """Swap step attempted out of order or with unsafe timelocks."""
