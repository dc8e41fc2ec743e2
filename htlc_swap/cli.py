"""
htlc-swap command line.

Manual operations against the deployed HTLC contracts, one subcommand per
action. Settings come from HTLC_* environment variables (see config.py).

Usage:
    htlc-swap secret
    htlc-swap evm-lock --recipient 0x... --hashlock 0x... --amount 100 \\
        --receiver-chain-id 1 --receiver-chain-address EQ...
    htlc-swap evm-withdraw --contract-id 0x... --secret 0x...
    htlc-swap evm-batch-withdraw --contract-ids 0x.. 0x.. --secrets 0x.. 0x..
    htlc-swap evm-refund --contract-id 0x...
    htlc-swap ton-lock --hashlock 0x... --amount 0.1 \\
        --receiver-chain-id 11155111 --receiver-chain-address 0x...
    htlc-swap ton-redeem --lock-id 123 --secret 0x...
    htlc-swap ton-refund --lock-id 123
    htlc-swap ton-emit --account EQ... --index 0

Results are printed as JSON; failures exit with status 1.
"""

import sys
import json
import logging
import argparse
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, List, Optional

from .core import generate_secret
from .config import load_config, require
from .errors import HTLCError
from .chains.evm import EVMClient
from .chains.ton import TonWallet, TonApiClient
from .htlc import EvmHtlc, TonHtlc, LockOptions
from .swap.correlator import CommitmentCorrelator

log = logging.getLogger("htlc_swap")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _output(result: Any):
    if hasattr(result, "to_dict"):
        result = result.to_dict()
    elif is_dataclass(result):
        result = asdict(result)
    print(json.dumps(result, indent=2, default=str))


# =============================================================================
# EVM commands
# =============================================================================

def _evm(settings):
    client = EVMClient(settings.evm)
    client.ensure_connected()
    require(settings.evm.contract_address, "HTLC_EVM_CONTRACT")
    return EvmHtlc.from_config(client.web3, settings.evm), client.account


def cmd_secret(args, settings) -> Dict:
    secret, hashlock = generate_secret()
    return {"secret": "0x" + secret, "hashlock": "0x" + hashlock}


def cmd_evm_lock(args, settings):
    htlc, signer = _evm(settings)
    return htlc.lock(
        args.recipient,
        signer,
        args.hashlock,
        args.amount,
        args.receiver_chain_id,
        args.receiver_chain_address,
        LockOptions(lock_seconds=args.lock_seconds, gas_limit=args.gas_limit),
    )


def cmd_evm_withdraw(args, settings):
    htlc, signer = _evm(settings)
    return htlc.withdraw(args.contract_id, signer, args.secret, gas_limit=args.gas_limit)


def cmd_evm_batch_withdraw(args, settings):
    htlc, signer = _evm(settings)
    return htlc.batch_withdraw(signer, args.contract_ids, args.secrets, gas_limit=args.gas_limit)


def cmd_evm_refund(args, settings):
    htlc, signer = _evm(settings)
    return htlc.refund(args.contract_id, signer, gas_limit=args.gas_limit)


# =============================================================================
# TON commands
# =============================================================================

def _ton(settings):
    require(settings.ton.contract_address, "HTLC_TON_CONTRACT")
    return TonHtlc.from_config(settings.ton), TonWallet.from_config(settings.ton)


def cmd_ton_lock(args, settings):
    htlc, wallet = _ton(settings)
    return htlc.lock(
        args.recipient or "",
        wallet,
        args.hashlock,
        args.amount,
        args.receiver_chain_id,
        args.receiver_chain_address,
        LockOptions(lock_seconds=args.lock_seconds, commit_id=args.commit_id),
    )


def cmd_ton_redeem(args, settings):
    htlc, wallet = _ton(settings)
    return htlc.withdraw(args.lock_id, wallet, args.secret)


def cmd_ton_refund(args, settings):
    htlc, wallet = _ton(settings)
    return htlc.refund(args.lock_id, wallet)


def cmd_ton_emit(args, settings) -> Dict:
    api = TonApiClient.from_config(settings.ton)
    try:
        correlator = CommitmentCorrelator(api)
        if args.depth > 1 or args.attempts > 1:
            commit_id = correlator.find_commit_id(
                args.account, start_index=args.index, depth=args.depth,
                attempts=args.attempts, backoff=settings.swap.correlator_backoff,
            )
        else:
            commit_id = correlator.parse_emit(args.account, args.index)
    finally:
        api.close()
    return {"account": args.account, "commit_id": str(commit_id)}


# =============================================================================
# MAIN
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="htlc-swap",
        description="HTLC atomic swap operations on EVM and TON",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("secret", help="Generate a secret and its hashlock")
    p.set_defaults(func=cmd_secret)

    p = sub.add_parser("evm-lock", help="createHTLC on the EVM contract")
    p.add_argument("--recipient", required=True, help="Address that can redeem")
    p.add_argument("--hashlock", required=True, help="sha256(secret), 32 bytes hex")
    p.add_argument("--amount", required=True,
                   help="Amount in HTLC_EVM_DENOMINATION units (default finney)")
    p.add_argument("--receiver-chain-id", type=int, required=True)
    p.add_argument("--receiver-chain-address", required=True)
    p.add_argument("--lock-seconds", type=int, help="Default 3600")
    p.add_argument("--gas-limit", type=int, help="Skip gas estimation")
    p.set_defaults(func=cmd_evm_lock)

    p = sub.add_parser("evm-withdraw", help="redeem an EVM lock with the secret")
    p.add_argument("--contract-id", required=True)
    p.add_argument("--secret", required=True)
    p.add_argument("--gas-limit", type=int)
    p.set_defaults(func=cmd_evm_withdraw)

    p = sub.add_parser("evm-batch-withdraw", help="batchRedeem several EVM locks")
    p.add_argument("--contract-ids", nargs="+", required=True)
    p.add_argument("--secrets", nargs="+", required=True)
    p.add_argument("--gas-limit", type=int)
    p.set_defaults(func=cmd_evm_batch_withdraw)

    p = sub.add_parser("evm-refund", help="refund an expired EVM lock")
    p.add_argument("--contract-id", required=True)
    p.add_argument("--gas-limit", type=int)
    p.set_defaults(func=cmd_evm_refund)

    p = sub.add_parser("ton-lock", help="send LockCommitment to the TON contract")
    p.add_argument("--hashlock", required=True)
    p.add_argument("--amount", required=True, help="Amount in TON")
    p.add_argument("--receiver-chain-id", type=int, required=True)
    p.add_argument("--receiver-chain-address", required=True)
    p.add_argument("--recipient", help="Counterparty, for the log only")
    p.add_argument("--commit-id", type=int, help="Override the derived commitment id")
    p.add_argument("--lock-seconds", type=int, help="Default 3600")
    p.set_defaults(func=cmd_ton_lock)

    p = sub.add_parser("ton-redeem", help="send Redeem to the TON contract")
    p.add_argument("--lock-id", required=True)
    p.add_argument("--secret", required=True)
    p.set_defaults(func=cmd_ton_redeem)

    p = sub.add_parser("ton-refund", help="send Refund to the TON contract")
    p.add_argument("--lock-id", required=True)
    p.set_defaults(func=cmd_ton_refund)

    p = sub.add_parser("ton-emit", help="read the commitment id emitted by a transaction")
    p.add_argument("--account", required=True, help="Contract address")
    p.add_argument("--index", type=int, default=0, help="Transaction index (0 = latest)")
    p.add_argument("--depth", type=int, default=1, help="Transactions scanned per attempt")
    p.add_argument("--attempts", type=int, default=1)
    p.set_defaults(func=cmd_ton_emit)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        settings = load_config()
        result = args.func(args, settings)
    except HTLCError as e:
        log.error(f"{args.command} failed: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    _output(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
