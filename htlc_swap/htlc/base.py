"""
Chain adapter capability shared by the EVM and TON HTLC implementations.

Adapters are plain classes that satisfy HTLCAdapter structurally; which one
is used is decided by configuration (see htlc_swap.htlc.build_adapter).
"""

import math
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Sequence, Protocol

from ..core import DEFAULT_LOCK_SECONDS
from ..errors import InvalidArgument


@dataclass
class LockOptions:
    """Optional knobs for lock()."""
    lock_seconds: Optional[int] = None    # Default: DEFAULT_LOCK_SECONDS
    gas_limit: Optional[int] = None       # Explicit limit skips estimation
    deadline: Optional[float] = None      # Unix time to stop waiting for confirmation
    commit_id: Optional[int] = None       # TON only: overrides the derived id


@dataclass
class TxHandle:
    """Reference to a submitted transaction, enough to re-check it later."""
    chain: str
    ref: str                    # EVM tx hash, TON wallet address
    seqno: Optional[int] = None  # TON wallet seqno the message was signed with


@dataclass
class LockResult:
    """Result of a lock (mint) operation."""
    chain: str
    tx: TxHandle
    hashlock: str
    timelock: int
    amount: int                        # Smallest native unit
    contract_id: Optional[str] = None  # None when not synchronously available (TON)
    gas_limit: Optional[int] = None
    commit_id: Optional[int] = None    # TON commitment id sent in the message


@dataclass
class WithdrawResult:
    """Result of a redeem / refund."""
    chain: str
    tx: TxHandle
    contract_id: str
    gas_limit: Optional[int] = None


@dataclass
class BatchEntry:
    """Outcome of one (contract_id, secret) pair inside a batch."""
    contract_id: str
    success: bool
    error: Optional[str] = None
    tx: Optional[TxHandle] = None


@dataclass
class BatchWithdrawResult:
    """Per-entry outcome of a batch redemption."""
    chain: str
    entries: List[BatchEntry] = field(default_factory=list)
    tx: Optional[TxHandle] = None
    gas_limit: Optional[int] = None

    @property
    def succeeded(self) -> List[str]:
        return [e.contract_id for e in self.entries if e.success]

    @property
    def failed(self) -> List[str]:
        return [e.contract_id for e in self.entries if not e.success]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.entries) and all(e.success for e in self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain,
            "tx": self.tx.ref if self.tx else None,
            "gas_limit": self.gas_limit,
            "entries": [
                {"contract_id": e.contract_id, "success": e.success, "error": e.error}
                for e in self.entries
            ],
        }


class HTLCAdapter(Protocol):
    """Capability every chain adapter provides."""

    chain: str

    def lock(self, recipient: str, sender: Any, hashlock: str, amount: Any,
             receiver_chain_id: int, receiver_chain_address: str,
             options: Optional[LockOptions] = None) -> LockResult:
        ...

    def withdraw(self, contract_id: str, sender: Any, proof: str,
                 gas_limit: Optional[int] = None,
                 deadline: Optional[float] = None) -> WithdrawResult:
        ...

    def batch_withdraw(self, sender: Any, contract_ids: Sequence[str],
                       secrets: Sequence[str],
                       gas_limit: Optional[int] = None,
                       deadline: Optional[float] = None) -> BatchWithdrawResult:
        ...

    def refund(self, contract_id: str, sender: Any,
               gas_limit: Optional[int] = None,
               deadline: Optional[float] = None) -> WithdrawResult:
        ...

    def wait_confirmed(self, handle: TxHandle, deadline: float) -> TxHandle:
        ...


# =============================================================================
# Shared policy
# =============================================================================

def lock_period(now: float, lock_seconds: Optional[int] = None) -> int:
    """Absolute expiry for a new lock: now + lock_seconds (default 3600)."""
    if lock_seconds is None:
        lock_seconds = DEFAULT_LOCK_SECONDS
    if isinstance(lock_seconds, bool) or not isinstance(lock_seconds, int):
        raise InvalidArgument(f"lock_seconds must be an integer, got {lock_seconds!r}")
    if lock_seconds <= 0:
        raise InvalidArgument(f"lock_seconds must be > 0, got {lock_seconds}")
    return int(now) + lock_seconds


def scale_gas(estimate: int, multiplier: float) -> int:
    """Gas limit from a dry-run estimate: ceil(estimate * multiplier)."""
    if multiplier < 1.0:
        raise InvalidArgument(f"Gas multiplier must be >= 1.0, got {multiplier}")
    # round first so 100000 * 1.2 does not become 120001
    return math.ceil(round(estimate * multiplier, 6))


def check_batch(contract_ids: Sequence[str], secrets: Sequence[str]):
    """Batch arrays must be non-empty and of equal length."""
    if not contract_ids or not secrets:
        raise InvalidArgument("Batch must contain at least one entry")
    if len(contract_ids) != len(secrets):
        raise InvalidArgument(
            f"Batch length mismatch: {len(contract_ids)} ids vs {len(secrets)} secrets"
        )
