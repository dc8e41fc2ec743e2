"""
Commitment correlator.

Recovers the commitment id the TON contract assigned to a lock. The id is
not returned by the send; the contract emits it as an external out message
(op 0x2eec4b61, body CommitId{commitId:int257}) in the transaction that
processed the lock. Given an account and a transaction index this module
finds that message and decodes it.

    correlator = CommitmentCorrelator(TonApiClient.from_config(cfg.ton))
    commit_id = correlator.parse_emit(contract_address, 0)
"""

import time
import logging
from typing import Callable, Dict, List, Optional

from ..chains.boc import cell_from_boc

from ..core import COMMIT_EMIT_OPCODE
from ..confirm import retry_read
from ..errors import NotFound, DecodeError, InvalidArgument

log = logging.getLogger(__name__)

EXT_OUT_MSG = "ext_out_msg"


def decode_commit_id(raw_body: str, opcode: int = COMMIT_EMIT_OPCODE) -> int:
    """
    Decode a hex encoded BoC body into the emitted commitment id.

    Layout: op:uint32 commitId:int257

    Raises:
        DecodeError: not hex, not a BoC, wrong op or too short
    """
    try:
        boc = bytes.fromhex(raw_body[2:] if raw_body.startswith("0x") else raw_body)
    except (ValueError, TypeError, AttributeError):
        raise DecodeError(f"Log payload is not hex: {str(raw_body)[:32]!r}")
    if not boc:
        raise DecodeError("Empty log payload")

    body = cell_from_boc(boc).begin_parse()
    op = body.read_uint(32)
    if op != opcode:
        raise DecodeError(f"Unexpected op code 0x{op:08x} in log payload")
    return body.read_int(257)


def _op_code(message: Dict) -> Optional[int]:
    value = message.get("op_code")
    if value is None:
        return None
    try:
        return int(value, 16) if isinstance(value, str) else int(value)
    except ValueError:
        return None


class CommitmentCorrelator:
    """
    Extracts commitment ids from finalized TON transactions.

    Reads are idempotent, so transport failures are retried; NotFound and
    DecodeError are returned to the caller as-is.
    """

    def __init__(
        self,
        api,                                # TonApiClient
        opcode: int = COMMIT_EMIT_OPCODE,
        read_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api = api
        self.opcode = opcode
        self.read_attempts = read_attempts
        self.sleep = sleep

    def _transactions(self, account: str) -> List[Dict]:
        return retry_read(
            lambda: self.api.get_account_transactions(account),
            attempts=self.read_attempts,
            sleep=self.sleep,
        )

    def _emit_in(self, tx: Dict, index: int) -> Optional[int]:
        """Commitment id of the first matching emit in `tx`, None without one."""
        for message in tx.get("out_msgs", []):
            if message.get("msg_type") != EXT_OUT_MSG:
                continue
            if _op_code(message) != self.opcode:
                continue
            commit_id = decode_commit_id(message.get("raw_body") or "", self.opcode)
            log.info(f"Commitment id from tx {str(tx.get('hash', index))[:16]}...: "
                     f"{str(commit_id)[:16]}...")
            return commit_id
        return None

    def parse_emit(self, account: str, index: int) -> int:
        """
        Commitment id emitted by transaction `index` of `account`.

        Args:
            account: Contract address whose transactions are scanned
            index: Position in the account's transaction list (0 = latest)

        Raises:
            NotFound: no matching emit in that transaction (retry later)
            DecodeError: matching emit with a malformed payload
        """
        if index < 0:
            raise InvalidArgument(f"Transaction index must be >= 0, got {index}")

        transactions = self._transactions(account)
        if index >= len(transactions):
            raise NotFound(f"{account} has no transaction at index {index}")

        tx = transactions[index]
        commit_id = self._emit_in(tx, index)
        if commit_id is None:
            raise NotFound(f"No commitment emit in transaction {index} of {account}",
                           tx=tx.get("hash"))
        return commit_id

    def find_commit_id(
        self,
        account: str,
        start_index: int = 0,
        depth: int = 5,
        attempts: int = 5,
        backoff: float = 3.0,
        expected: Optional[int] = None,
    ) -> int:
        """
        Search transactions start_index .. start_index+depth-1 for an emit.

        Each attempt reads the transaction list once and scans that
        snapshot. When `expected` is given only that id is accepted, so a
        newer unrelated commitment is skipped. Whole scans are retried with
        doubling backoff while nothing is found; a DecodeError stops the
        search immediately.

        Raises:
            NotFound: still nothing after all attempts
        """
        if depth < 1 or attempts < 1:
            raise InvalidArgument("depth and attempts must be >= 1")
        if start_index < 0:
            raise InvalidArgument(f"Transaction index must be >= 0, got {start_index}")

        delay = backoff
        for attempt in range(1, attempts + 1):
            transactions = self._transactions(account)
            window = transactions[start_index:start_index + depth]
            for index, tx in enumerate(window, start=start_index):
                commit_id = self._emit_in(tx, index)
                if commit_id is None:
                    continue
                if expected is None or commit_id == expected:
                    return commit_id
                log.debug(f"Skipping unrelated commitment at index {index}")

            if attempt < attempts:
                log.info(f"Commitment not visible yet (attempt {attempt}/{attempts}), "
                         f"retrying in {delay:.1f}s")
                self.sleep(delay)
                delay *= 2

        raise NotFound(
            f"No commitment emit in {account} transactions "
            f"{start_index}..{start_index + depth - 1} after {attempts} attempts"
        )
