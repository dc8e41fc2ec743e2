"""
TON HTLC adapter for htlc-swap.

Talks to the HashedTimeLockTON (Tact) contract with typed internal messages:
- LockCommitment{commitId, hashlock}
- Redeem{lockId, secret}
- Refund{lockId}

Message op codes follow Tact: first 4 bytes of sha256 of the message
signature. TON does not hand back the commitment id synchronously, lock()
returns contract_id=None and the id is recovered from the contract's
emitted log (see swap/correlator.py).

Confirmation: the sending wallet's seqno is read before the send and polled
until it changes, bounded by a deadline.
"""

import time
import hashlib
import logging
from typing import Optional, Sequence, Callable, Dict, Union

from ..chains.boc import Cell, begin_cell

from ..core import (
    TON_DECIMALS, to_base_units, to_bytes32, to_uint256,
    derive_commit_id,
)
from ..config import TONConfig
from ..confirm import wait_for_change, retry_read
from ..errors import InvalidArgument, HTLCError, Timeout
from .base import (
    LockOptions, LockResult, WithdrawResult, BatchEntry, BatchWithdrawResult,
    TxHandle, lock_period, check_batch,
)

log = logging.getLogger(__name__)

CHAIN = "ton"

INT257_MIN = -(2 ** 256)
INT257_MAX = 2 ** 256 - 1


def tact_message_id(signature: str) -> int:
    """Tact message op code: first 32 bits of sha256(signature)."""
    return int.from_bytes(hashlib.sha256(signature.encode()).digest()[:4], "big")


COMMIT_ID_SIGNATURE = "CommitId{commitId:int257}"
LOCK_COMMITMENT_SIGNATURE = "LockCommitment{data:LockCommitmentData{commitId:int257,hashlock:int257}}"
REDEEM_SIGNATURE = "Redeem{data:RedeemData{lockId:int257,secret:int257}}"
REFUND_SIGNATURE = "Refund{data:RefundData{lockId:int257}}"

LOCK_COMMITMENT_OP = tact_message_id(LOCK_COMMITMENT_SIGNATURE)
REDEEM_OP = tact_message_id(REDEEM_SIGNATURE)
REFUND_OP = tact_message_id(REFUND_SIGNATURE)


def parse_lock_id(value: Union[int, str]) -> int:
    """TON lock ids are int257; accept int, decimal string or 0x hex."""
    if isinstance(value, bool):
        raise InvalidArgument(f"Invalid TON lock id: {value!r}")
    try:
        if isinstance(value, str) and value.startswith(("0x", "0X")):
            lock_id = int(value, 16)
        else:
            lock_id = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"Invalid TON lock id: {value!r}")
    if not INT257_MIN <= lock_id <= INT257_MAX:
        raise InvalidArgument(f"TON lock id out of int257 range: {value!r}")
    return lock_id


def build_lock_commitment(commit_id: int, hashlock: int) -> Cell:
    return (begin_cell()
            .store_uint(LOCK_COMMITMENT_OP, 32)
            .store_int(commit_id, 257)
            .store_int(hashlock, 257)
            .end_cell())


def build_redeem(lock_id: int, secret: int) -> Cell:
    return (begin_cell()
            .store_uint(REDEEM_OP, 32)
            .store_int(lock_id, 257)
            .store_int(secret, 257)
            .end_cell())


def build_refund(lock_id: int) -> Cell:
    return (begin_cell()
            .store_uint(REFUND_OP, 32)
            .store_int(lock_id, 257)
            .end_cell())


class TonHtlc:
    """
    TON HTLC manager.

    `sender` arguments are wallets exposing `.address`, `.get_seqno()` and
    `.send_message(destination, value, body, bounce, seqno)` (see
    chains/ton.py TonWallet).
    """

    chain = CHAIN

    def __init__(
        self,
        contract_address: str,
        redeem_value: str = "1",
        poll_interval: float = 1.5,
        confirm_timeout: int = 300,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not contract_address:
            raise InvalidArgument("HTLC contract address not set")
        self.contract_address = contract_address
        self.redeem_value = to_base_units(redeem_value, TON_DECIMALS)
        self.poll_interval = poll_interval
        self.confirm_timeout = confirm_timeout
        self.clock = clock
        self.sleep = sleep

        # wallets that sent something, so handles can be re-checked later
        self._senders: Dict[str, object] = {}

    @classmethod
    def from_config(cls, config: TONConfig) -> "TonHtlc":
        return cls(
            config.contract_address,
            redeem_value=config.redeem_value,
            poll_interval=config.poll_interval,
            confirm_timeout=config.confirm_timeout,
        )

    # =========================================================================
    # Protocol operations
    # =========================================================================

    def lock(
        self,
        recipient: str,
        sender,
        hashlock: str,
        amount,
        receiver_chain_id: int,
        receiver_chain_address: str,
        options: Optional[LockOptions] = None,
    ) -> LockResult:
        """
        Send LockCommitment with `amount` TON attached.

        The commitment id is options.commit_id or derived from the swap
        parameters. The id the contract assigns is only visible in its
        emitted log, so contract_id is None here.
        """
        options = options or LockOptions()
        timelock = lock_period(self.clock(), options.lock_seconds)
        value = to_base_units(amount, TON_DECIMALS)
        hashlock_bytes = to_bytes32(hashlock)

        if options.commit_id is not None:
            commit_id = parse_lock_id(options.commit_id)
        else:
            commit_id = derive_commit_id(
                hashlock, sender.address, receiver_chain_id, receiver_chain_address
            )
        if options.gas_limit is not None:
            log.debug("gas_limit ignored on TON, fees come from the attached value")

        body = build_lock_commitment(commit_id, int.from_bytes(hashlock_bytes, "big"))

        log.info(f"Sending LockCommitment: {amount} TON, recipient={recipient[:12]}..., "
                 f"commit_id={str(commit_id)[:16]}...")
        result = LockResult(
            chain=self.chain,
            tx=None,
            hashlock="0x" + hashlock_bytes.hex(),
            timelock=timelock,
            amount=value,
            contract_id=None,
            commit_id=commit_id,
        )
        try:
            result.tx = self._send(sender, value, body, options.deadline, "LockCommitment")
        except Timeout as e:
            result.tx = e.handle
            e.result = result
            raise
        return result

    def withdraw(
        self,
        contract_id: Union[int, str],
        sender,
        proof: str,
        gas_limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> WithdrawResult:
        """Send Redeem{lockId, secret}."""
        lock_id = parse_lock_id(contract_id)
        body = build_redeem(lock_id, to_uint256(proof))

        log.info(f"Redeeming HTLC lock_id={str(lock_id)[:16]}...")
        handle = self._send(sender, self.redeem_value, body, deadline, "Redeem")

        return WithdrawResult(chain=self.chain, tx=handle, contract_id=str(lock_id))

    def batch_withdraw(
        self,
        sender,
        contract_ids: Sequence[Union[int, str]],
        secrets: Sequence[str],
        gas_limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> BatchWithdrawResult:
        """
        TON has no batch message: one Redeem per entry, sequentially.

        Each entry succeeds or fails on its own. A Redeem that is not
        confirmed by `deadline` still holds the wallet seqno, so the batch
        stops there: that entry is reported unconfirmed with its handle and
        the rest are not attempted.
        """
        check_batch(contract_ids, secrets)
        result = BatchWithdrawResult(chain=self.chain)
        pairs = list(zip(contract_ids, secrets))

        for i, (contract_id, secret) in enumerate(pairs):
            entry = BatchEntry(contract_id=str(contract_id), success=False)
            result.entries.append(entry)
            try:
                withdrawn = self.withdraw(contract_id, sender, secret, deadline=deadline)
            except Timeout as e:
                log.warning(f"Batch stopped at {str(contract_id)[:16]}...: {e}")
                entry.error = f"{'unconfirmed' if e.handle else 'not sent'}: {e.message}"
                entry.tx = e.handle
                result.tx = e.handle
                for rest_id, _ in pairs[i + 1:]:
                    result.entries.append(BatchEntry(
                        contract_id=str(rest_id), success=False, error="not attempted",
                    ))
                break
            except HTLCError as e:
                log.warning(f"Batch entry {str(contract_id)[:16]}... failed: {e}")
                entry.error = str(e)
                continue
            entry.contract_id = withdrawn.contract_id
            entry.success = True
            entry.tx = withdrawn.tx

        return result

    def refund(
        self,
        contract_id: Union[int, str],
        sender,
        gas_limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> WithdrawResult:
        """Send Refund{lockId}."""
        lock_id = parse_lock_id(contract_id)
        body = build_refund(lock_id)

        log.info(f"Refunding HTLC lock_id={str(lock_id)[:16]}...")
        handle = self._send(sender, self.redeem_value, body, deadline, "Refund")

        return WithdrawResult(chain=self.chain, tx=handle, contract_id=str(lock_id))

    def wait_confirmed(self, handle: TxHandle, deadline: float) -> TxHandle:
        """Poll the wallet seqno of an already sent message again."""
        sender = self._senders.get(handle.ref)
        if sender is None:
            raise InvalidArgument(f"Unknown TON sender {handle.ref}")
        self._confirm(sender, handle, deadline)
        return handle

    # =========================================================================
    # Internals
    # =========================================================================

    def _send(self, sender, value: int, body: Cell, deadline: Optional[float],
              what: str) -> TxHandle:
        seqno = retry_read(sender.get_seqno, sleep=self.sleep)
        if deadline is not None and self.clock() >= deadline:
            raise Timeout(f"Deadline passed, {what} not sent")
        sender.send_message(self.contract_address, value, body, bounce=True, seqno=seqno)

        handle = TxHandle(chain=self.chain, ref=sender.address, seqno=seqno)
        self._senders[sender.address] = sender
        self._confirm(sender, handle, deadline, what)
        return handle

    def _confirm(self, sender, handle: TxHandle, deadline: Optional[float],
                 what: str = "message"):
        if deadline is None:
            deadline = self.clock() + self.confirm_timeout
        try:
            wait_for_change(
                sender.get_seqno,
                handle.seqno,
                deadline,
                poll_interval=self.poll_interval,
                clock=self.clock,
                sleep=self.sleep,
                what=f"{what} confirmation",
            )
        except Timeout as e:
            raise Timeout(e.message, handle=handle, tx=f"{handle.ref}#{handle.seqno}")
        log.info(f"{what} confirmed (seqno {handle.seqno} consumed)")
