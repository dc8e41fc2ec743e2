"""
Swap coordination for htlc-swap.

Orchestrates atomic swaps across two chains and recovers TON commitment
ids from the contract's emitted logs.
"""

from .correlator import CommitmentCorrelator, decode_commit_id
from .orchestrator import SwapOrchestrator, SwapState, SwapLeg, ActiveSwap, run_swap

__all__ = [
    "CommitmentCorrelator",
    "decode_commit_id",
    "SwapOrchestrator",
    "SwapState",
    "SwapLeg",
    "ActiveSwap",
    "run_swap",
]
