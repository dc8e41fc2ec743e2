#!/usr/bin/env python3
"""
Identifier & secret model tests.

Secrets/hashlocks, commitment ids, unit conversion and the per-commitment
state machine.
"""

import sys
import os
import hashlib
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from htlc_swap.core import (
    CommitmentState, Commitment, generate_secret, hashlock_of, verify_preimage,
    to_bytes32, to_uint256, from_uint256, derive_commit_id, to_base_units,
    EVM_DENOMINATIONS, TON_DECIMALS,
)
from htlc_swap.errors import InvalidArgument, InvalidState


class TestSecrets(unittest.TestCase):

    def test_generate_secret(self):
        """Secret is 32 random bytes, hashlock is its sha256."""
        secret, hashlock = generate_secret()
        self.assertEqual(len(secret), 64)
        self.assertEqual(hashlock, hashlib.sha256(bytes.fromhex(secret)).hexdigest())

    def test_secrets_are_unique(self):
        seen = {generate_secret()[0] for _ in range(100)}
        self.assertEqual(len(seen), 100)

    def test_hashlock_of_accepts_prefix(self):
        secret, hashlock = generate_secret()
        self.assertEqual(hashlock_of("0x" + secret), hashlock)

    def test_hashlock_of_rejects_garbage(self):
        with self.assertRaises(InvalidArgument):
            hashlock_of("not hex")

    def test_verify_preimage(self):
        secret, hashlock = generate_secret()
        other, _ = generate_secret()
        self.assertTrue(verify_preimage(secret, hashlock))
        self.assertTrue(verify_preimage("0x" + secret, "0x" + hashlock))
        self.assertFalse(verify_preimage(other, hashlock))
        self.assertFalse(verify_preimage("zz", hashlock))


class TestIdentifiers(unittest.TestCase):

    def test_to_bytes32(self):
        self.assertEqual(to_bytes32("0x" + "ab" * 32), b"\xab" * 32)
        with self.assertRaises(InvalidArgument):
            to_bytes32("ab" * 31)
        with self.assertRaises(InvalidArgument):
            to_bytes32("0xnope")

    def test_uint256_conversion(self):
        value = "00" * 31 + "ff"
        self.assertEqual(to_uint256(value), 255)
        self.assertEqual(from_uint256(255), value)
        with self.assertRaises(InvalidArgument):
            from_uint256(-1)

    def test_commit_id_is_deterministic(self):
        _, hashlock = generate_secret()
        a = derive_commit_id(hashlock, "EQsender", 11155111, "0xabc")
        b = derive_commit_id(hashlock, "EQsender", 11155111, "0xabc")
        self.assertEqual(a, b)
        self.assertLess(a, 2 ** 256)

    def test_commit_id_depends_on_every_field(self):
        _, hashlock = generate_secret()
        _, other_lock = generate_secret()
        base = derive_commit_id(hashlock, "EQsender", 1, "0xabc")
        self.assertNotEqual(base, derive_commit_id(other_lock, "EQsender", 1, "0xabc"))
        self.assertNotEqual(base, derive_commit_id(hashlock, "EQother", 1, "0xabc"))
        self.assertNotEqual(base, derive_commit_id(hashlock, "EQsender", 2, "0xabc"))
        self.assertNotEqual(base, derive_commit_id(hashlock, "EQsender", 1, "0xabd"))


class TestUnits(unittest.TestCase):

    def test_finney(self):
        self.assertEqual(to_base_units("100", EVM_DENOMINATIONS["finney"]), 100 * 10 ** 15)

    def test_fractional_ton(self):
        self.assertEqual(to_base_units("0.1", TON_DECIMALS), 100_000_000)

    def test_float_goes_through_repr(self):
        self.assertEqual(to_base_units(0.1, EVM_DENOMINATIONS["ether"]), 10 ** 17)

    def test_excess_precision_rejected(self):
        with self.assertRaises(InvalidArgument):
            to_base_units("0.0000000001", TON_DECIMALS)

    def test_non_positive_rejected(self):
        for amount in ("0", "-1", "nan", "abc"):
            with self.assertRaises(InvalidArgument, msg=amount):
                to_base_units(amount, TON_DECIMALS)


class TestCommitment(unittest.TestCase):

    def setUp(self):
        self.secret, self.hashlock = generate_secret()
        self.commitment = Commitment(
            chain="evm",
            hashlock="0x" + self.hashlock.upper(),
            timelock=1000,
            amount=5,
            sender="alice",
            recipient="bob",
        )

    def test_hashlock_normalized(self):
        self.assertEqual(self.commitment.hashlock, self.hashlock)

    def test_hashlock_immutable(self):
        with self.assertRaises(InvalidState):
            self.commitment.hashlock = "00" * 32

    def test_redeem_flow(self):
        self.commitment.mark_locked("0x01", "0xtx")
        self.commitment.mark_redeemed(self.secret, "0xsettle")
        self.assertEqual(self.commitment.state, CommitmentState.REDEEMED)
        self.assertTrue(self.commitment.is_terminal)
        self.assertEqual(self.commitment.secret, self.secret)

    def test_redeem_needs_lock(self):
        with self.assertRaises(InvalidState):
            self.commitment.mark_redeemed(self.secret)

    def test_redeem_wrong_secret(self):
        self.commitment.mark_locked("0x01")
        other, _ = generate_secret()
        with self.assertRaises(InvalidState):
            self.commitment.mark_redeemed(other)
        self.assertEqual(self.commitment.state, CommitmentState.LOCKED)

    def test_refund_only_after_timelock(self):
        self.commitment.mark_locked("0x01")
        with self.assertRaises(InvalidState):
            self.commitment.mark_refunded(999)
        self.commitment.mark_refunded(1000)
        self.assertEqual(self.commitment.state, CommitmentState.REFUNDED)

    def test_terminal_states_are_final(self):
        self.commitment.mark_locked("0x01")
        self.commitment.mark_refunded(2000)
        with self.assertRaises(InvalidState):
            self.commitment.mark_redeemed(self.secret)
        with self.assertRaises(InvalidState):
            self.commitment.mark_locked("0x02")

    def test_to_dict_hides_secret(self):
        self.commitment.mark_locked("0x01")
        self.commitment.mark_redeemed(self.secret)
        data = self.commitment.to_dict()
        self.assertEqual(data["state"], "redeemed")
        self.assertNotIn("secret", data)


if __name__ == "__main__":
    unittest.main()
