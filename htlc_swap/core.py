"""
Core types and helpers for htlc-swap.

Secrets, hashlocks and commitment identifiers, plus the per-commitment
lifecycle shared by every chain adapter.
"""

import hashlib
import secrets
from decimal import Decimal, InvalidOperation
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Union

from .errors import InvalidArgument, InvalidState


# =============================================================================
# Constants
# =============================================================================

DEFAULT_LOCK_SECONDS = 3600      # Used when the caller gives no lock duration
GAS_MULTIPLIER = 1.2             # Safety factor over a dry-run estimate

# External out message emitted by the TON contract when a commitment is made.
# First 4 bytes of sha256("CommitId{commitId:int257}").
COMMIT_EMIT_OPCODE = 0x2eec4b61

# Counter leg must expire at least this long before the origin leg
TIMELOCK_MIN_GAP_SECONDS = 900

# Native denominations (decimals)
EVM_DENOMINATIONS = {
    "wei": 0,
    "gwei": 9,
    "szabo": 12,
    "finney": 15,
    "ether": 18,
}
TON_DECIMALS = 9                 # 1 TON = 10^9 nanotons

UINT256_MAX = 2 ** 256 - 1


class CommitmentState(Enum):
    """Lifecycle of a single lock on one chain."""
    CREATED = "created"      # Built locally, not yet on-chain
    LOCKED = "locked"        # Lock transaction confirmed
    REDEEMED = "redeemed"    # Claimed with the secret (terminal)
    REFUNDED = "refunded"    # Returned to locker after expiry (terminal)


TERMINAL_STATES = (CommitmentState.REDEEMED, CommitmentState.REFUNDED)


# =============================================================================
# Secret / hashlock utilities
# =============================================================================

def _strip_0x(value: str) -> str:
    if value.startswith(("0x", "0X")):
        return value[2:]
    return value


def generate_secret() -> tuple[str, str]:
    """
    Generate a random secret and its SHA256 hashlock.

    Returns:
        (secret_hex, hashlock_hex)
    """
    secret = secrets.token_bytes(32)
    hashlock = hashlib.sha256(secret).digest()
    return secret.hex(), hashlock.hex()


def hashlock_of(secret_hex: str) -> str:
    """SHA256 of a hex encoded secret, as hex."""
    try:
        preimage = bytes.fromhex(_strip_0x(secret_hex))
    except (ValueError, TypeError):
        raise InvalidArgument(f"Secret is not valid hex: {secret_hex!r}")
    return hashlib.sha256(preimage).hexdigest()


def verify_preimage(preimage_hex: str, hashlock_hex: str) -> bool:
    """
    Verify that SHA256(preimage) == hashlock.

    Args:
        preimage_hex: 32-byte preimage as hex string
        hashlock_hex: Expected SHA256 hash as hex string

    Returns:
        True if valid
    """
    try:
        preimage = bytes.fromhex(_strip_0x(preimage_hex))
        expected = bytes.fromhex(_strip_0x(hashlock_hex))
        actual = hashlib.sha256(preimage).digest()
        return actual == expected
    except (ValueError, TypeError, AttributeError):
        return False


def to_bytes32(value: str) -> bytes:
    """Decode a 32-byte hex value (optional 0x prefix)."""
    try:
        raw = bytes.fromhex(_strip_0x(value))
    except (ValueError, TypeError, AttributeError):
        raise InvalidArgument(f"Not a hex value: {value!r}")
    if len(raw) != 32:
        raise InvalidArgument(f"bytes32 must be 64 hex chars, got {len(raw) * 2}")
    return raw


def to_uint256(value: str) -> int:
    """bytes32 hex -> unsigned integer (TON carries ids and secrets as ints)."""
    return int.from_bytes(to_bytes32(value), "big")


def from_uint256(value: int) -> str:
    """Unsigned integer -> 64 char hex."""
    if value < 0 or value > UINT256_MAX:
        raise InvalidArgument(f"Value out of uint256 range: {value}")
    return value.to_bytes(32, "big").hex()


def derive_commit_id(hashlock: str, sender: str, receiver_chain_id: int,
                     receiver_chain_address: str) -> int:
    """
    Derive a deterministic 256-bit commitment id.

    sha256(hashlock || sender || chain_id (32 bytes BE) || receiver address)
    """
    if receiver_chain_id < 0:
        raise InvalidArgument(f"Invalid receiver chain id: {receiver_chain_id}")
    h = hashlib.sha256()
    h.update(to_bytes32(hashlock))
    h.update(sender.encode())
    h.update(receiver_chain_id.to_bytes(32, "big"))
    h.update(receiver_chain_address.encode())
    return int.from_bytes(h.digest(), "big")


def to_base_units(amount: Union[int, str, Decimal], decimals: int) -> int:
    """
    Convert a human amount to the chain's smallest unit.

    The denomination is explicit; amounts with more precision than the
    denomination supports are rejected rather than rounded.
    """
    if isinstance(amount, float):
        # floats carry binary noise; go through their shortest repr
        amount = repr(amount)
    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidArgument(f"Invalid amount: {amount!r}")

    if not value.is_finite() or value <= 0:
        raise InvalidArgument(f"Amount must be positive: {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidArgument(
            f"Amount {amount} has more than {decimals} decimal places"
        )
    return int(scaled)


# =============================================================================
# Commitment
# =============================================================================

@dataclass
class Commitment:
    """One lock instance on one chain, as seen by this side of the swap."""
    chain: str
    hashlock: str
    timelock: int               # Unix timestamp after which refund is allowed
    amount: int                 # Smallest native unit
    sender: str
    recipient: str

    receiver_chain_id: int = 0
    receiver_chain_address: str = ""

    contract_id: Optional[str] = None
    state: CommitmentState = CommitmentState.CREATED
    secret: Optional[str] = None
    lock_tx: Optional[str] = None
    settle_tx: Optional[str] = None

    _frozen: bool = field(default=False, init=False, repr=False)

    def __post_init__(self):
        self.hashlock = _strip_0x(self.hashlock).lower()
        to_bytes32(self.hashlock)
        self._frozen = True

    def __setattr__(self, name, value):
        if name == "hashlock" and getattr(self, "_frozen", False):
            raise InvalidState("hashlock is immutable once the commitment exists")
        super().__setattr__(name, value)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def mark_locked(self, contract_id: Optional[str] = None,
                    lock_tx: Optional[str] = None):
        if self.state != CommitmentState.CREATED:
            raise InvalidState(f"Cannot lock commitment in state {self.state.value}")
        self.state = CommitmentState.LOCKED
        if contract_id is not None:
            self.contract_id = contract_id
        self.lock_tx = lock_tx

    def mark_redeemed(self, secret: str, settle_tx: Optional[str] = None):
        if self.state != CommitmentState.LOCKED:
            raise InvalidState(f"Cannot redeem commitment in state {self.state.value}")
        if not verify_preimage(secret, self.hashlock):
            raise InvalidState("Secret does not match hashlock")
        self.state = CommitmentState.REDEEMED
        self.secret = _strip_0x(secret).lower()
        self.settle_tx = settle_tx

    def mark_refunded(self, now: float, settle_tx: Optional[str] = None):
        if self.state != CommitmentState.LOCKED:
            raise InvalidState(f"Cannot refund commitment in state {self.state.value}")
        if now < self.timelock:
            raise InvalidState(
                f"Timelock not reached: now={int(now)} < timelock={self.timelock}"
            )
        self.state = CommitmentState.REFUNDED
        self.settle_tx = settle_tx

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain,
            "contract_id": self.contract_id,
            "hashlock": self.hashlock,
            "timelock": self.timelock,
            "amount": self.amount,
            "sender": self.sender,
            "recipient": self.recipient,
            "receiver_chain_id": self.receiver_chain_id,
            "receiver_chain_address": self.receiver_chain_address,
            "state": self.state.value,
            "lock_tx": self.lock_tx,
            "settle_tx": self.settle_tx,
        }
