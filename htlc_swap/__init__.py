"""
htlc-swap - Cross-chain atomic swaps over HTLCs

Coordinates swaps between an EVM chain and TON using hash time-locked
contracts on both sides: lock on the origin chain, lock on the counter
chain under the same hashlock, reveal the secret on the counter chain,
complete on the origin chain.

Usage:
    from htlc_swap import load_config, build_adapter, SwapOrchestrator
    from htlc_swap import CommitmentCorrelator, TonApiClient

    settings = load_config()
    origin = build_adapter(settings.evm)
    counter = build_adapter(settings.ton)
    correlator = CommitmentCorrelator(TonApiClient.from_config(settings.ton))

    orchestrator = SwapOrchestrator(origin, counter, correlator, settings.swap)
    swap = orchestrator.plan(bob_evm, "100", alice_ton, "0.1")
"""

from .core import (
    CommitmentState,
    Commitment,
    generate_secret,
    hashlock_of,
    verify_preimage,
    derive_commit_id,
    to_base_units,
    DEFAULT_LOCK_SECONDS,
    COMMIT_EMIT_OPCODE,
)
from .errors import (
    HTLCError,
    InvalidArgument,
    EstimationFailure,
    ContractRevert,
    NotFound,
    DecodeError,
    Timeout,
    InvalidState,
    ProtocolViolation,
)
from .config import Settings, GasPolicy, EVMConfig, TONConfig, SwapConfig, load_config

from .chains.evm import EVMClient
from .chains.ton import TonCenterClient, TonWallet, TonApiClient

from .htlc import build_adapter, EvmHtlc, TonHtlc, LockOptions, LockResult
from .swap import SwapOrchestrator, SwapState, ActiveSwap, CommitmentCorrelator

__version__ = "0.1.0"
__all__ = [
    # Core types
    "CommitmentState",
    "Commitment",
    "generate_secret",
    "hashlock_of",
    "verify_preimage",
    "derive_commit_id",
    "to_base_units",
    "DEFAULT_LOCK_SECONDS",
    "COMMIT_EMIT_OPCODE",
    # Errors
    "HTLCError",
    "InvalidArgument",
    "EstimationFailure",
    "ContractRevert",
    "NotFound",
    "DecodeError",
    "Timeout",
    "InvalidState",
    "ProtocolViolation",
    # Config
    "Settings",
    "GasPolicy",
    "EVMConfig",
    "TONConfig",
    "SwapConfig",
    "load_config",
    # Chain clients
    "EVMClient",
    "TonCenterClient",
    "TonWallet",
    "TonApiClient",
    # HTLC
    "build_adapter",
    "EvmHtlc",
    "TonHtlc",
    "LockOptions",
    "LockResult",
    # Swap
    "SwapOrchestrator",
    "SwapState",
    "ActiveSwap",
    "CommitmentCorrelator",
]
