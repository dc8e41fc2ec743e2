"""
HTLC (Hash Time-Locked Contract) adapters for each chain.

Every adapter exposes lock / withdraw / batch_withdraw / refund /
wait_confirmed (see base.HTLCAdapter):
- EVM: HashedTimelockEther Solidity contract via web3
- TON: HashedTimeLockTON Tact contract via wallet messages
"""

from typing import Optional, Union

from web3 import Web3

from ..config import EVMConfig, TONConfig
from ..errors import InvalidArgument
from .base import (
    HTLCAdapter, LockOptions, TxHandle, LockResult, WithdrawResult,
    BatchEntry, BatchWithdrawResult,
)
from .evm import EvmHtlc
from .ton import TonHtlc


def build_adapter(config: Union[EVMConfig, TONConfig],
                  web3: Optional[Web3] = None) -> HTLCAdapter:
    """Pick the adapter for a chain configuration."""
    if isinstance(config, EVMConfig):
        if web3 is None:
            from ..chains.evm import EVMClient
            web3 = EVMClient(config).web3
        return EvmHtlc.from_config(web3, config)
    if isinstance(config, TONConfig):
        return TonHtlc.from_config(config)
    raise InvalidArgument(f"No HTLC adapter for {type(config).__name__}")


__all__ = [
    "build_adapter",
    "HTLCAdapter",
    "LockOptions",
    "TxHandle",
    "LockResult",
    "WithdrawResult",
    "BatchEntry",
    "BatchWithdrawResult",
    "EvmHtlc",
    "TonHtlc",
]
