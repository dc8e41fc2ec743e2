"""
Chain clients for htlc-swap.

Connection and signing only:
- EVM: web3 HTTP provider and an eth-account local signer
- TON: toncenter wallet access and tonapi transaction reads
"""

from .evm import EVMClient
from .ton import TonCenterClient, TonWallet, TonApiClient
