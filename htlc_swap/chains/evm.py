"""
EVM RPC client for htlc-swap.

Thin wrapper that builds the web3 connection and the local signer from
EVMConfig. Protocol logic lives in htlc/evm.py.
"""

import logging
from typing import Optional

from web3 import Web3
from eth_account import Account
from eth_account.signers.local import LocalAccount

from ..config import EVMConfig, require
from ..errors import HTLCError

log = logging.getLogger(__name__)


class EVMClient:
    """
    EVM chain access: web3 instance plus the configured signer.

    The signer is what the HTLC adapter receives as `sender`; it only needs
    `.address` and `.sign_transaction(tx)`.
    """

    def __init__(self, config: EVMConfig, web3: Optional[Web3] = None):
        self.config = config
        self._web3 = web3
        self._account: Optional[LocalAccount] = None

    @property
    def web3(self) -> Web3:
        """Lazy-load web3 instance."""
        if self._web3 is None:
            require(self.config.rpc_url, "HTLC_EVM_RPC_URL")
            self._web3 = Web3(Web3.HTTPProvider(
                self.config.rpc_url,
                request_kwargs={"timeout": 30},
            ))
        return self._web3

    @property
    def account(self) -> LocalAccount:
        """Signer resolved from the injected private key."""
        if self._account is None:
            private_key = require(self.config.private_key, "HTLC_EVM_PRIVATE_KEY")
            if not private_key.startswith("0x"):
                private_key = "0x" + private_key
            self._account = Account.from_key(private_key)
            log.info(f"EVM signer: {self._account.address}")
        return self._account

    def ensure_connected(self):
        if not self.web3.is_connected():
            raise HTLCError(f"Cannot connect to RPC {self.config.rpc_url}")

