"""
EVM HTLC adapter for htlc-swap.

Interacts with the HashedTimelockEther contract (native value HTLC):
- createHTLC(recipient, hashlock, lockPeriod, receiverChainId, receiverChainAddress) payable
- redeem(contractId, proof)
- batchRedeem(contractId[], proof[])
- refund(contractId)

Gas policy: an explicit limit is authoritative (no estimate call). Otherwise
the call is dry-run with the same arguments/value and the estimate scaled by
GasPolicy.multiplier (1.2). batchRedeem uses GasPolicy.batch_multiplier,
1.0 by default, i.e. the raw estimate.
"""

import time
import logging
from typing import Optional, List, Sequence, Callable, Tuple, Any

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from ..core import EVM_DENOMINATIONS, to_base_units, to_bytes32
from ..config import EVMConfig, GasPolicy
from ..errors import (
    InvalidArgument, EstimationFailure, ContractRevert, Timeout,
)
from .base import (
    LockOptions, LockResult, WithdrawResult, BatchEntry, BatchWithdrawResult,
    TxHandle, lock_period, scale_gas, check_batch,
)

log = logging.getLogger(__name__)

CHAIN = "evm"

HTLC_CREATED_EVENT = "HTLCCreated(bytes32,address,address,uint256,bytes32,uint256,uint256,string)"
HTLC_REDEEMED_EVENT = "HTLCRedeemed(bytes32,bytes32)"
HTLC_REFUNDED_EVENT = "HTLCRefunded(bytes32)"

HTLC_CREATED_TOPIC = Web3.to_hex(Web3.keccak(text=HTLC_CREATED_EVENT))
HTLC_REDEEMED_TOPIC = Web3.to_hex(Web3.keccak(text=HTLC_REDEEMED_EVENT))
HTLC_REFUNDED_TOPIC = Web3.to_hex(Web3.keccak(text=HTLC_REFUNDED_EVENT))

# Contract ABI (minimal - only functions and events we use)
HTLC_ABI = [
    {
        "name": "createHTLC",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {"name": "recipient", "type": "address"},
            {"name": "hashlock", "type": "bytes32"},
            {"name": "lockPeriod", "type": "uint256"},
            {"name": "receiverChainId", "type": "uint256"},
            {"name": "receiverChainAddress", "type": "string"}
        ],
        "outputs": [{"name": "contractId", "type": "bytes32"}]
    },
    {
        "name": "redeem",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "contractId", "type": "bytes32"},
            {"name": "proof", "type": "bytes32"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "batchRedeem",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "contractIds", "type": "bytes32[]"},
            {"name": "proofs", "type": "bytes32[]"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "refund",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "contractId", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "HTLCCreated",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "contractId", "type": "bytes32", "indexed": True},
            {"name": "sender", "type": "address", "indexed": True},
            {"name": "recipient", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "hashlock", "type": "bytes32", "indexed": False},
            {"name": "timelock", "type": "uint256", "indexed": False},
            {"name": "receiverChainId", "type": "uint256", "indexed": False},
            {"name": "receiverChainAddress", "type": "string", "indexed": False}
        ]
    },
    {
        "name": "HTLCRedeemed",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "contractId", "type": "bytes32", "indexed": True},
            {"name": "proof", "type": "bytes32", "indexed": False}
        ]
    },
    {
        "name": "HTLCRefunded",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "contractId", "type": "bytes32", "indexed": True}
        ]
    }
]


def _to_hex(value: Any) -> str:
    """0x-prefixed lowercase hex for bytes/HexBytes/str topics."""
    if isinstance(value, str):
        value = value.lower()
        return value if value.startswith("0x") else "0x" + value
    return "0x" + bytes(value).hex()


def normalize_id(contract_id: str) -> str:
    """Canonical 0x + 64 hex form of a contract id."""
    return "0x" + to_bytes32(contract_id).hex()


class EvmHtlc:
    """
    EVM HTLC manager.

    `sender` arguments are signers (eth_account LocalAccount or anything
    with `.address` and `.sign_transaction(tx)`).
    """

    chain = CHAIN

    def __init__(
        self,
        web3: Web3,
        contract_address: str,
        chain_id: Optional[int] = None,
        gas: Optional[GasPolicy] = None,
        denomination: str = "finney",
        receipt_timeout: int = 120,
        clock: Callable[[], float] = time.time,
    ):
        if denomination not in EVM_DENOMINATIONS:
            raise InvalidArgument(f"Unknown denomination: {denomination}")
        if not contract_address:
            raise InvalidArgument("HTLC contract address not set")

        self.web3 = web3
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.chain_id = chain_id
        self.gas = gas or GasPolicy()
        self.denomination = denomination
        self.receipt_timeout = receipt_timeout
        self.clock = clock

        self.contract = web3.eth.contract(address=self.contract_address, abi=HTLC_ABI)

    @classmethod
    def from_config(cls, web3: Web3, config: EVMConfig) -> "EvmHtlc":
        return cls(
            web3,
            config.contract_address,
            chain_id=config.chain_id,
            gas=config.gas,
            denomination=config.denomination,
            receipt_timeout=config.receipt_timeout,
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
        Lock native value under `hashlock` until now + lock_seconds.

        Args:
            recipient: Address that can redeem with the secret
            sender: Signer funding the lock
            hashlock: SHA256 of the secret (bytes32 hex)
            amount: Amount in `denomination` units (e.g. finney)
            receiver_chain_id: Chain id of the counter leg
            receiver_chain_address: Recipient address on the counter chain
            options: lock_seconds / gas_limit / deadline

        Returns:
            LockResult with the contract id taken from HTLCCreated
        """
        options = options or LockOptions()
        timelock = lock_period(self.clock(), options.lock_seconds)
        value = to_base_units(amount, EVM_DENOMINATIONS[self.denomination])
        hashlock_bytes = to_bytes32(hashlock)

        if not Web3.is_address(recipient):
            raise InvalidArgument(f"Invalid recipient address: {recipient}")

        call = self.contract.functions.createHTLC(
            Web3.to_checksum_address(recipient),
            hashlock_bytes,
            timelock,
            receiver_chain_id,
            receiver_chain_address,
        )
        params = {"from": sender.address, "value": value}

        predicted_id = None
        gas_limit = options.gas_limit
        if gas_limit is None:
            gas_limit = self._estimate(call, params, self.gas.multiplier)
            predicted_id = self._dry_run(call, params)

        log.info(f"Creating HTLC: {amount} {self.denomination} -> {recipient[:10]}..., "
                 f"timelock={timelock}, gas={gas_limit}")

        try:
            handle, receipt = self._submit(call, sender, gas_limit, value, options.deadline)
        except Timeout as e:
            e.result = LockResult(
                chain=self.chain,
                tx=e.handle,
                hashlock="0x" + hashlock_bytes.hex(),
                timelock=timelock,
                amount=value,
                contract_id=predicted_id,
                gas_limit=gas_limit,
            )
            raise

        ids = self._event_ids(receipt, HTLC_CREATED_TOPIC)
        if ids:
            contract_id = ids[0]
            log.info(f"Extracted contract id from event: {contract_id}")
        elif predicted_id:
            log.warning("Could not extract contract id from event, using simulated value")
            contract_id = predicted_id
        else:
            log.warning(f"No HTLCCreated event in {handle.ref}")
            contract_id = None

        return LockResult(
            chain=self.chain,
            tx=handle,
            hashlock="0x" + hashlock_bytes.hex(),
            timelock=timelock,
            amount=value,
            contract_id=contract_id,
            gas_limit=gas_limit,
        )

    def withdraw(
        self,
        contract_id: str,
        sender,
        proof: str,
        gas_limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> WithdrawResult:
        """
        Redeem a lock with the secret.

        Raises:
            ContractRevert: wrong proof, already settled, or expired
              (EstimationFailure when caught by the dry-run)
        """
        call = self.contract.functions.redeem(to_bytes32(contract_id), to_bytes32(proof))
        params = {"from": sender.address}

        if gas_limit is None:
            gas_limit = self._estimate(call, params, self.gas.multiplier)

        log.info(f"Redeeming HTLC {contract_id[:18]}..., gas={gas_limit}")
        handle, _ = self._submit(call, sender, gas_limit, 0, deadline)

        return WithdrawResult(
            chain=self.chain,
            tx=handle,
            contract_id=normalize_id(contract_id),
            gas_limit=gas_limit,
        )

    def batch_withdraw(
        self,
        sender,
        contract_ids: Sequence[str],
        secrets: Sequence[str],
        gas_limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> BatchWithdrawResult:
        """
        Redeem several locks in one batchRedeem transaction.

        Every pair is dry-run on its own first; pairs that would revert are
        reported failed and left out, so one bad secret does not sink the
        others. Outcome is reported per entry.

        When the receipt does not arrive before `deadline` the submitted
        entries are reported unconfirmed and `result.tx` keeps the handle for
        wait_confirmed().
        """
        check_batch(contract_ids, secrets)
        params = {"from": sender.address}

        result = BatchWithdrawResult(chain=self.chain)
        pending: List[BatchEntry] = []
        batch_ids: List[bytes] = []
        batch_proofs: List[bytes] = []

        for contract_id, secret in zip(contract_ids, secrets):
            entry = BatchEntry(contract_id=contract_id, success=False)
            result.entries.append(entry)
            try:
                id_bytes = to_bytes32(contract_id)
                proof_bytes = to_bytes32(secret)
                self.contract.functions.redeem(id_bytes, proof_bytes).call(params)
            except InvalidArgument as e:
                entry.error = str(e)
                continue
            except (ContractLogicError, ValueError) as e:
                entry.error = f"redeem would revert: {e}"
                log.warning(f"Batch entry {contract_id[:18]}... excluded: {e}")
                continue

            entry.contract_id = normalize_id(contract_id)
            pending.append(entry)
            batch_ids.append(id_bytes)
            batch_proofs.append(proof_bytes)

        if not pending:
            log.warning("No batch entry passed the dry-run, nothing submitted")
            return result

        call = self.contract.functions.batchRedeem(batch_ids, batch_proofs)

        try:
            if gas_limit is None:
                gas_limit = self._estimate(call, params, self.gas.batch_multiplier)
            result.gas_limit = gas_limit
            log.info(f"Batch redeeming {len(pending)}/{len(result.entries)} HTLCs, gas={gas_limit}")
            handle, receipt = self._submit(call, sender, gas_limit, 0, deadline)
        except ContractRevert as e:
            log.error(f"batchRedeem failed: {e}")
            for entry in pending:
                entry.error = str(e)
            return result
        except Timeout as e:
            log.warning(f"batchRedeem not confirmed: {e}")
            result.tx = e.handle
            status = "unconfirmed" if e.handle is not None else "not sent"
            for entry in pending:
                entry.error = f"{status}: {e.message}"
                entry.tx = e.handle
            return result

        result.tx = handle
        redeemed = set(self._event_ids(receipt, HTLC_REDEEMED_TOPIC))
        for entry in pending:
            # a contract without per-id events is all-or-nothing: trust status
            if not redeemed or entry.contract_id in redeemed:
                entry.success = True
                entry.tx = handle
            else:
                entry.error = "not redeemed by batch transaction"

        return result

    def refund(
        self,
        contract_id: str,
        sender,
        gas_limit: Optional[int] = None,
        deadline: Optional[float] = None,
    ) -> WithdrawResult:
        """Refund an expired lock back to its sender."""
        call = self.contract.functions.refund(to_bytes32(contract_id))
        params = {"from": sender.address}

        if gas_limit is None:
            gas_limit = self._estimate(call, params, self.gas.multiplier)

        log.info(f"Refunding HTLC {contract_id[:18]}..., gas={gas_limit}")
        handle, _ = self._submit(call, sender, gas_limit, 0, deadline)

        return WithdrawResult(
            chain=self.chain,
            tx=handle,
            contract_id=normalize_id(contract_id),
            gas_limit=gas_limit,
        )

    def wait_confirmed(self, handle: TxHandle, deadline: float) -> TxHandle:
        """Re-check an already submitted transaction without resubmitting."""
        self._wait_receipt(handle, deadline)
        return handle

    # =========================================================================
    # Internals
    # =========================================================================

    def _estimate(self, call, params: dict, multiplier: float) -> int:
        try:
            estimate = call.estimate_gas(params)
        except (ContractLogicError, ValueError) as e:
            log.error(f"Gas estimation failed: {e}")
            raise EstimationFailure(f"Dry-run reverted: {e}")
        return scale_gas(estimate, multiplier)

    def _dry_run(self, call, params: dict) -> Optional[str]:
        try:
            result = call.call(params)
        except (ContractLogicError, ValueError) as e:
            raise EstimationFailure(f"Simulation failed: {e}")
        if isinstance(result, (bytes, bytearray)) and len(result) == 32:
            return _to_hex(result)
        return None

    def _submit(self, call, sender, gas_limit: int, value: int,
                deadline: Optional[float]) -> Tuple[TxHandle, Any]:
        w3 = self.web3
        tx_params = {
            "from": sender.address,
            "value": value,
            "gas": gas_limit,
            "gasPrice": int(w3.eth.gas_price * self.gas.price_bump),
            "nonce": w3.eth.get_transaction_count(sender.address, "pending"),
        }
        if self.chain_id is not None:
            tx_params["chainId"] = self.chain_id

        tx = call.build_transaction(tx_params)
        signed = sender.sign_transaction(tx)
        if deadline is not None and self.clock() >= deadline:
            raise Timeout("Deadline passed, transaction not sent")
        try:
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise ContractRevert(f"Rejected at submission: {e}")

        handle = TxHandle(chain=self.chain, ref=_to_hex(tx_hash))
        log.info(f"TX: {handle.ref}")

        receipt = self._wait_receipt(handle, deadline)
        return handle, receipt

    def _wait_receipt(self, handle: TxHandle, deadline: Optional[float]):
        timeout = float(self.receipt_timeout)
        if deadline is not None:
            timeout = min(timeout, deadline - self.clock())
        if timeout <= 0:
            raise Timeout("Deadline passed before confirmation", handle=handle, tx=handle.ref)

        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(handle.ref, timeout=timeout)
        except TimeExhausted:
            raise Timeout(f"No receipt after {timeout:.0f}s", handle=handle, tx=handle.ref)

        if receipt["status"] != 1:
            raise ContractRevert("Transaction reverted", tx=handle.ref)
        return receipt

    def _event_ids(self, receipt, topic: str) -> List[str]:
        """Contract ids (first indexed topic) of our events matching `topic`."""
        ids = []
        contract = self.contract_address.lower()
        for entry in receipt.get("logs", []):
            if str(entry["address"]).lower() != contract:
                continue
            topics = entry.get("topics", [])
            if len(topics) >= 2 and _to_hex(topics[0]) == topic:
                ids.append(_to_hex(topics[1]))
        return ids
