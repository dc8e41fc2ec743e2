"""
Runtime configuration for htlc-swap.

Everything secret (private keys, mnemonics, API tokens) is resolved at
startup from the environment, which is where a secret store injects them.
Nothing is hardcoded in the SDK.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional, Mapping

from .core import (
    DEFAULT_LOCK_SECONDS, GAS_MULTIPLIER, TIMELOCK_MIN_GAP_SECONDS, EVM_DENOMINATIONS,
)
from .errors import InvalidArgument

log = logging.getLogger(__name__)


@dataclass
class GasPolicy:
    """How gas limits are derived from dry-run estimates."""
    multiplier: float = GAS_MULTIPLIER   # lock / withdraw / refund
    # batchRedeem historically submitted the raw estimate. Kept as the
    # default, set to `multiplier` to make both paths consistent.
    batch_multiplier: float = 1.0
    price_bump: float = 1.1              # Over eth_gasPrice, for replacement room

    def __post_init__(self):
        for name in ("multiplier", "batch_multiplier", "price_bump"):
            if getattr(self, name) < 1.0:
                raise InvalidArgument(f"GasPolicy.{name} must be >= 1.0")


@dataclass
class EVMConfig:
    """EVM chain configuration."""
    rpc_url: str = "https://ethereum-sepolia-rpc.publicnode.com"
    contract_address: str = ""
    chain_id: int = 11155111            # Sepolia
    private_key: str = ""               # Signer, injected from the environment
    denomination: str = "finney"        # Unit `amount` is expressed in
    receipt_timeout: int = 120          # seconds
    gas: GasPolicy = field(default_factory=GasPolicy)


@dataclass
class TONConfig:
    """TON chain configuration."""
    toncenter_url: str = "https://testnet.toncenter.com/api/v2"
    toncenter_api_key: str = ""
    tonapi_url: str = "https://testnet.tonapi.io"
    tonapi_token: str = ""
    contract_address: str = ""
    mnemonic: str = ""                  # Wallet words, injected from the environment
    wallet_address: str = ""            # Deployed v4r2 wallet the mnemonic controls
    message_ttl: int = 60               # seconds a signed transfer stays valid
    redeem_value: str = "1"             # TON attached to Redeem / Refund messages
    poll_interval: float = 1.5          # seconds between seqno checks
    confirm_timeout: int = 300          # seconds, used when no deadline is given
    http_timeout: float = 15.0


@dataclass
class SwapConfig:
    """Swap orchestration configuration."""
    origin_lock_seconds: int = DEFAULT_LOCK_SECONDS
    counter_lock_seconds: int = 1800
    min_gap_seconds: int = TIMELOCK_MIN_GAP_SECONDS
    safety_margin_seconds: int = 120    # Stop waiting this long before expiry
    min_confirm_seconds: int = 300      # Shortest window left to confirm the origin lock

    # Commitment id discovery (TON)
    correlator_depth: int = 5           # Transactions scanned per attempt
    correlator_attempts: int = 5
    correlator_backoff: float = 3.0     # seconds, doubled per attempt


@dataclass
class Settings:
    evm: EVMConfig
    ton: TONConfig
    swap: SwapConfig


def _get(env: Mapping[str, str], key: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(key)
    if value is None or value == "":
        return default
    return value


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    value = _get(env, key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidArgument(f"{key} must be an integer, got {value!r}")


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    value = _get(env, key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise InvalidArgument(f"{key} must be a number, got {value!r}")


def load_config(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from HTLC_* environment variables.

    EVM:  HTLC_EVM_RPC_URL, HTLC_EVM_CONTRACT, HTLC_EVM_CHAIN_ID,
          HTLC_EVM_PRIVATE_KEY, HTLC_EVM_DENOMINATION, HTLC_EVM_RECEIPT_TIMEOUT,
          HTLC_EVM_GAS_MULTIPLIER, HTLC_EVM_BATCH_GAS_MULTIPLIER
    TON:  HTLC_TON_TONCENTER_URL, HTLC_TON_TONCENTER_API_KEY, HTLC_TON_TONAPI_URL,
          HTLC_TON_TONAPI_TOKEN, HTLC_TON_CONTRACT, HTLC_TON_MNEMONIC, HTLC_TON_WALLET_ADDRESS,
          HTLC_TON_MESSAGE_TTL, HTLC_TON_REDEEM_VALUE, HTLC_TON_POLL_INTERVAL,
          HTLC_TON_CONFIRM_TIMEOUT
    Swap: HTLC_SWAP_ORIGIN_LOCK_SECONDS, HTLC_SWAP_COUNTER_LOCK_SECONDS,
          HTLC_SWAP_MIN_GAP_SECONDS, HTLC_SWAP_SAFETY_MARGIN_SECONDS,
          HTLC_SWAP_MIN_CONFIRM_SECONDS
    """
    if env is None:
        env = os.environ

    evm_defaults = EVMConfig()
    gas = GasPolicy(
        multiplier=_get_float(env, "HTLC_EVM_GAS_MULTIPLIER", GAS_MULTIPLIER),
        batch_multiplier=_get_float(env, "HTLC_EVM_BATCH_GAS_MULTIPLIER", 1.0),
    )
    evm = EVMConfig(
        rpc_url=_get(env, "HTLC_EVM_RPC_URL", evm_defaults.rpc_url),
        contract_address=_get(env, "HTLC_EVM_CONTRACT", ""),
        chain_id=_get_int(env, "HTLC_EVM_CHAIN_ID", evm_defaults.chain_id),
        private_key=_get(env, "HTLC_EVM_PRIVATE_KEY", ""),
        denomination=_get(env, "HTLC_EVM_DENOMINATION", evm_defaults.denomination),
        receipt_timeout=_get_int(env, "HTLC_EVM_RECEIPT_TIMEOUT", evm_defaults.receipt_timeout),
        gas=gas,
    )

    ton_defaults = TONConfig()
    ton = TONConfig(
        toncenter_url=_get(env, "HTLC_TON_TONCENTER_URL", ton_defaults.toncenter_url),
        toncenter_api_key=_get(env, "HTLC_TON_TONCENTER_API_KEY", ""),
        tonapi_url=_get(env, "HTLC_TON_TONAPI_URL", ton_defaults.tonapi_url),
        tonapi_token=_get(env, "HTLC_TON_TONAPI_TOKEN", ""),
        contract_address=_get(env, "HTLC_TON_CONTRACT", ""),
        mnemonic=_get(env, "HTLC_TON_MNEMONIC", ""),
        wallet_address=_get(env, "HTLC_TON_WALLET_ADDRESS", ""),
        message_ttl=_get_int(env, "HTLC_TON_MESSAGE_TTL", ton_defaults.message_ttl),
        redeem_value=_get(env, "HTLC_TON_REDEEM_VALUE", ton_defaults.redeem_value),
        poll_interval=_get_float(env, "HTLC_TON_POLL_INTERVAL", ton_defaults.poll_interval),
        confirm_timeout=_get_int(env, "HTLC_TON_CONFIRM_TIMEOUT", ton_defaults.confirm_timeout),
    )

    swap_defaults = SwapConfig()
    swap = SwapConfig(
        origin_lock_seconds=_get_int(env, "HTLC_SWAP_ORIGIN_LOCK_SECONDS",
                                     swap_defaults.origin_lock_seconds),
        counter_lock_seconds=_get_int(env, "HTLC_SWAP_COUNTER_LOCK_SECONDS",
                                      swap_defaults.counter_lock_seconds),
        min_gap_seconds=_get_int(env, "HTLC_SWAP_MIN_GAP_SECONDS",
                                 swap_defaults.min_gap_seconds),
        safety_margin_seconds=_get_int(env, "HTLC_SWAP_SAFETY_MARGIN_SECONDS",
                                       swap_defaults.safety_margin_seconds),
        min_confirm_seconds=_get_int(env, "HTLC_SWAP_MIN_CONFIRM_SECONDS",
                                     swap_defaults.min_confirm_seconds),
    )

    if evm.denomination not in EVM_DENOMINATIONS:
        raise InvalidArgument(f"Unknown EVM denomination: {evm.denomination}")

    log.debug(f"Loaded config: evm={evm.rpc_url} ton={ton.toncenter_url}")
    return Settings(evm=evm, ton=ton, swap=swap)


def require(value: str, name: str) -> str:
    """Fail fast on a missing required setting."""
    if not value:
        raise InvalidArgument(f"Missing required setting: {name}")
    return value
