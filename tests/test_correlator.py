#!/usr/bin/env python3
"""
Commitment correlator tests.

tonapi transaction payloads are built the way tonapi returns them: out
messages with msg_type, op_code and a hex BoC raw_body.
"""

import sys
import os
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from htlc_swap.chains.boc import begin_cell

from htlc_swap.core import COMMIT_EMIT_OPCODE
from htlc_swap.errors import HTLCError, NotFound, DecodeError
from htlc_swap.swap.correlator import CommitmentCorrelator, decode_commit_id

ACCOUNT = "EQ" + "C" * 46


def emit_body(commit_id: int, op: int = COMMIT_EMIT_OPCODE) -> str:
    cell = begin_cell().store_uint(op, 32).store_int(commit_id, 257).end_cell()
    return cell.to_boc().hex()


def emit_tx(commit_id: int, tx_hash: str = "ab" * 32) -> dict:
    return {
        "hash": tx_hash,
        "out_msgs": [
            {"msg_type": "int_msg", "op_code": "0x00000000", "raw_body": ""},
            {"msg_type": "ext_out_msg", "op_code": "0x2eec4b61",
             "raw_body": emit_body(commit_id)},
        ],
    }


def plain_tx(tx_hash: str = "cd" * 32) -> dict:
    return {"hash": tx_hash, "out_msgs": [{"msg_type": "int_msg", "op_code": "0x0f8a7ea5"}]}


class TestDecode(unittest.TestCase):

    def test_decodes_commit_id(self):
        self.assertEqual(decode_commit_id(emit_body(123456789)), 123456789)

    def test_full_width_and_negative_ids(self):
        big = 2 ** 256 - 1
        self.assertEqual(decode_commit_id(emit_body(big)), big)
        self.assertEqual(decode_commit_id("0x" + emit_body(-42)), -42)

    def test_not_hex(self):
        with self.assertRaises(DecodeError):
            decode_commit_id("not-hex")

    def test_not_a_boc(self):
        with self.assertRaises(DecodeError):
            decode_commit_id("deadbeef")

    def test_empty(self):
        with self.assertRaises(DecodeError):
            decode_commit_id("")

    def test_wrong_op_in_body(self):
        with self.assertRaises(DecodeError):
            decode_commit_id(emit_body(1, op=0x12345678))

    def test_truncated_body(self):
        short = begin_cell().store_uint(COMMIT_EMIT_OPCODE, 32).store_uint(1, 8).end_cell()
        with self.assertRaises(DecodeError):
            decode_commit_id(short.to_boc().hex())


class TestParseEmit(unittest.TestCase):

    def setUp(self):
        self.api = MagicMock()
        self.sleep = MagicMock()
        self.correlator = CommitmentCorrelator(self.api, sleep=self.sleep)

    def test_finds_emit(self):
        self.api.get_account_transactions.return_value = [emit_tx(777)]
        self.assertEqual(self.correlator.parse_emit(ACCOUNT, 0), 777)
        self.api.get_account_transactions.assert_called_with(ACCOUNT)

    def test_idempotent(self):
        self.api.get_account_transactions.return_value = [plain_tx(), emit_tx(5)]
        first = self.correlator.parse_emit(ACCOUNT, 1)
        second = self.correlator.parse_emit(ACCOUNT, 1)
        self.assertEqual(first, second)

    def test_no_emit_in_transaction(self):
        self.api.get_account_transactions.return_value = [plain_tx()]
        with self.assertRaises(NotFound):
            self.correlator.parse_emit(ACCOUNT, 0)

    def test_index_out_of_range(self):
        self.api.get_account_transactions.return_value = [emit_tx(1)]
        with self.assertRaises(NotFound):
            self.correlator.parse_emit(ACCOUNT, 3)

    def test_other_ext_out_ops_ignored(self):
        tx = {"hash": "ef", "out_msgs": [
            {"msg_type": "ext_out_msg", "op_code": "0x11111111", "raw_body": "00"},
        ]}
        self.api.get_account_transactions.return_value = [tx]
        with self.assertRaises(NotFound):
            self.correlator.parse_emit(ACCOUNT, 0)

    def test_malformed_payload(self):
        tx = {"hash": "ef", "out_msgs": [
            {"msg_type": "ext_out_msg", "op_code": "0x2eec4b61", "raw_body": "zz"},
        ]}
        self.api.get_account_transactions.return_value = [tx]
        with self.assertRaises(DecodeError):
            self.correlator.parse_emit(ACCOUNT, 0)

    def test_transport_errors_retried(self):
        self.api.get_account_transactions.side_effect = [HTLCError("tonapi timeout"),
                                                          [emit_tx(9)]]
        self.assertEqual(self.correlator.parse_emit(ACCOUNT, 0), 9)
        self.sleep.assert_called_once()


class TestFindCommitId(unittest.TestCase):

    def setUp(self):
        self.api = MagicMock()
        self.sleep = MagicMock()
        self.correlator = CommitmentCorrelator(self.api, sleep=self.sleep)

    def test_scans_indices(self):
        self.api.get_account_transactions.return_value = [plain_tx(), plain_tx(), emit_tx(55)]
        self.assertEqual(self.correlator.find_commit_id(ACCOUNT, depth=3, attempts=1), 55)

    def test_one_read_per_attempt(self):
        """A scan reads the transaction list once and walks that snapshot."""
        self.api.get_account_transactions.side_effect = [
            [plain_tx(), plain_tx(), plain_tx()],
            # a new transaction arrived, shifting the emit to index 1
            [plain_tx(), emit_tx(66), plain_tx(), plain_tx()],
        ]
        commit_id = self.correlator.find_commit_id(ACCOUNT, depth=3, attempts=2)
        self.assertEqual(commit_id, 66)
        self.assertEqual(self.api.get_account_transactions.call_count, 2)

    def test_start_index_window(self):
        self.api.get_account_transactions.return_value = [emit_tx(1), plain_tx(), emit_tx(3)]
        self.assertEqual(
            self.correlator.find_commit_id(ACCOUNT, start_index=1, depth=2, attempts=1), 3
        )
        self.assertEqual(self.api.get_account_transactions.call_count, 1)

    def test_retries_until_visible(self):
        self.api.get_account_transactions.side_effect = [[], [], [emit_tx(8)]]
        commit_id = self.correlator.find_commit_id(ACCOUNT, depth=1, attempts=5, backoff=2.0)
        self.assertEqual(commit_id, 8)
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [2.0, 4.0])

    def test_gives_up(self):
        self.api.get_account_transactions.return_value = [plain_tx()]
        with self.assertRaises(NotFound):
            self.correlator.find_commit_id(ACCOUNT, depth=2, attempts=3, backoff=1.0)
        self.assertEqual(self.sleep.call_count, 2)

    def test_expected_skips_unrelated(self):
        self.api.get_account_transactions.return_value = [emit_tx(1), emit_tx(2)]
        self.assertEqual(
            self.correlator.find_commit_id(ACCOUNT, depth=2, attempts=1, expected=2), 2
        )

    def test_decode_error_not_retried(self):
        tx = {"hash": "ef", "out_msgs": [
            {"msg_type": "ext_out_msg", "op_code": "0x2eec4b61", "raw_body": "00ff"},
        ]}
        self.api.get_account_transactions.return_value = [tx]
        with self.assertRaises(DecodeError):
            self.correlator.find_commit_id(ACCOUNT, depth=1, attempts=5)
        self.assertEqual(self.api.get_account_transactions.call_count, 1)
        self.sleep.assert_not_called()


if __name__ == "__main__":
    unittest.main()
