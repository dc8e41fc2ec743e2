#!/usr/bin/env python3
"""
EVM HTLC adapter tests against an in-memory HashedTimelockEther.

Covers:
1. Lock period default and validation
2. Gas policy (1.2x estimate, explicit limit, raw batch estimate)
3. Hashlock property: only sha256 preimage redeems
4. Batch partial success
5. Refund after expiry, timeout re-check
"""

import sys
import os
import hashlib
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from htlc_swap.core import generate_secret
from htlc_swap.config import GasPolicy
from htlc_swap.errors import (
    InvalidArgument, ContractRevert, EstimationFailure, Timeout,
)
from htlc_swap.htlc.base import LockOptions, scale_gas
from htlc_swap.htlc.evm import EvmHtlc, normalize_id

from fakes import FakeWeb3, FakeSigner, CONTRACT, ALICE, BOB, BATCH_GAS_PER_ENTRY


class EvmTestCase(unittest.TestCase):

    def setUp(self):
        self.w3 = FakeWeb3()
        self.clock = self.w3.clock
        self.htlc = EvmHtlc(self.w3, CONTRACT, chain_id=11155111, clock=self.clock)
        self.alice = FakeSigner(ALICE)
        self.bob = FakeSigner(BOB)

    def lock(self, hashlock, amount="100", **options):
        return self.htlc.lock(BOB, self.alice, hashlock, amount, 1, "EQreceiver",
                              LockOptions(**options))

    def stored(self, contract_id):
        return self.w3.htlc.locks[bytes.fromhex(contract_id[2:])]


class TestLock(EvmTestCase):

    def test_default_timelock(self):
        """No lock_seconds: timelock = now + 3600."""
        _, hashlock = generate_secret()
        result = self.lock(hashlock)
        self.assertEqual(result.timelock, int(self.clock()) + 3600)
        self.assertEqual(self.stored(result.contract_id)["timelock"], result.timelock)

    def test_custom_lock_seconds(self):
        _, hashlock = generate_secret()
        result = self.lock(hashlock, lock_seconds=600)
        self.assertEqual(result.timelock, int(self.clock()) + 600)

    def test_non_positive_lock_seconds_rejected(self):
        _, hashlock = generate_secret()
        for seconds in (0, -5):
            with self.assertRaises(InvalidArgument):
                self.lock(hashlock, lock_seconds=seconds)
        self.assertEqual(self.w3.eth.sent, [])

    def test_value_in_denomination(self):
        _, hashlock = generate_secret()
        result = self.lock(hashlock, amount="100")
        self.assertEqual(result.amount, 100 * 10 ** 15)
        self.assertEqual(self.w3.eth.sent[-1]["value"], 100 * 10 ** 15)

    def test_contract_id_from_event(self):
        _, hashlock = generate_secret()
        result = self.lock(hashlock)
        self.assertIn(bytes.fromhex(result.contract_id[2:]), self.w3.htlc.locks)
        self.assertEqual(result.hashlock, "0x" + hashlock)
        self.assertEqual(result.tx.chain, "evm")

    def test_invalid_recipient(self):
        _, hashlock = generate_secret()
        with self.assertRaises(InvalidArgument):
            self.htlc.lock("0x1234", self.alice, hashlock, "1", 1, "EQ")


class TestGasPolicy(EvmTestCase):

    def test_scale_gas(self):
        self.assertEqual(scale_gas(100000, 1.2), 120000)
        self.assertEqual(scale_gas(33333, 1.2), 40000)
        self.assertEqual(scale_gas(33334, 1.2), 40001)
        self.assertEqual(scale_gas(50000, 1.0), 50000)

    def test_lock_uses_estimate_times_multiplier(self):
        _, hashlock = generate_secret()
        result = self.lock(hashlock)
        self.assertEqual(result.gas_limit, 120000)
        self.assertEqual(self.w3.eth.sent[-1]["gas"], 120000)

    def test_explicit_gas_limit_skips_estimation(self):
        _, hashlock = generate_secret()
        result = self.lock(hashlock, gas_limit=200000)
        self.assertEqual(self.w3.htlc.estimate_calls, [])
        self.assertEqual(self.w3.eth.sent[-1]["gas"], 200000)
        self.assertIsNotNone(result.contract_id)

    def test_withdraw_gas(self):
        secret, hashlock = generate_secret()
        lock = self.lock(hashlock)
        result = self.htlc.withdraw(lock.contract_id, self.bob, secret)
        self.assertEqual(result.gas_limit, 60000)

    def test_gas_price_bumped(self):
        _, hashlock = generate_secret()
        self.lock(hashlock)
        self.assertEqual(self.w3.eth.sent[-1]["gasPrice"], int(1_000_000_000 * 1.1))
        self.assertEqual(self.w3.eth.sent[-1]["chainId"], 11155111)


class TestWithdraw(EvmTestCase):

    def test_redeem_with_preimage(self):
        secret, hashlock = generate_secret()
        lock = self.lock(hashlock)
        result = self.htlc.withdraw(lock.contract_id, self.bob, "0x" + secret)
        self.assertTrue(self.stored(lock.contract_id)["redeemed"])
        self.assertEqual(result.contract_id, normalize_id(lock.contract_id))

    def test_wrong_secret_reverts(self):
        """sha256(wrong) != hashlock: the contract refuses."""
        _, hashlock = generate_secret()
        wrong, _ = generate_secret()
        lock = self.lock(hashlock)
        with self.assertRaises(ContractRevert):
            self.htlc.withdraw(lock.contract_id, self.bob, wrong)
        self.assertFalse(self.stored(lock.contract_id)["redeemed"])

    def test_wrong_secret_with_explicit_gas_reverts_on_chain(self):
        _, hashlock = generate_secret()
        wrong, _ = generate_secret()
        lock = self.lock(hashlock)
        with self.assertRaises(ContractRevert) as ctx:
            self.htlc.withdraw(lock.contract_id, self.bob, wrong, gas_limit=80000)
        self.assertNotIsInstance(ctx.exception, EstimationFailure)
        self.assertIsNotNone(ctx.exception.tx)

    def test_hashlock_is_sha256_of_secret(self):
        secret, hashlock = generate_secret()
        lock = self.lock(hashlock)
        stored = self.stored(lock.contract_id)["hashlock"]
        self.assertEqual(stored, hashlib.sha256(bytes.fromhex(secret)).digest())

    def test_redeem_after_expiry_reverts(self):
        secret, hashlock = generate_secret()
        lock = self.lock(hashlock)
        self.clock.advance(3600)
        with self.assertRaises(ContractRevert):
            self.htlc.withdraw(lock.contract_id, self.bob, secret)

    def test_double_redeem_reverts(self):
        secret, hashlock = generate_secret()
        lock = self.lock(hashlock)
        self.htlc.withdraw(lock.contract_id, self.bob, secret)
        with self.assertRaises(ContractRevert):
            self.htlc.withdraw(lock.contract_id, self.bob, secret)


class TestBatchWithdraw(EvmTestCase):

    def test_partial_success(self):
        """One bad secret does not sink the others."""
        good_secret, good_lock = generate_secret()
        _, bad_lock = generate_secret()
        wrong, _ = generate_secret()
        a = self.lock(good_lock)
        b = self.lock(bad_lock)

        result = self.htlc.batch_withdraw(
            self.bob, [a.contract_id, b.contract_id], [good_secret, wrong]
        )

        self.assertEqual([e.success for e in result.entries], [True, False])
        self.assertEqual(result.succeeded, [a.contract_id])
        self.assertEqual(result.failed, [b.contract_id])
        self.assertFalse(result.all_succeeded)
        self.assertIn("revert", result.entries[1].error)
        self.assertTrue(self.stored(a.contract_id)["redeemed"])
        self.assertFalse(self.stored(b.contract_id)["redeemed"])

    def test_raw_estimate_by_default(self):
        s1, h1 = generate_secret()
        s2, h2 = generate_secret()
        a = self.lock(h1)
        b = self.lock(h2)
        result = self.htlc.batch_withdraw(self.bob, [a.contract_id, b.contract_id], [s1, s2])
        self.assertTrue(result.all_succeeded)
        self.assertEqual(result.gas_limit, 2 * BATCH_GAS_PER_ENTRY)
        self.assertEqual(self.w3.eth.sent[-1]["gas"], 2 * BATCH_GAS_PER_ENTRY)

    def test_batch_multiplier_configurable(self):
        self.htlc = EvmHtlc(self.w3, CONTRACT, gas=GasPolicy(batch_multiplier=1.2),
                            clock=self.clock)
        secret, hashlock = generate_secret()
        a = self.lock(hashlock)
        result = self.htlc.batch_withdraw(self.bob, [a.contract_id], [secret])
        self.assertEqual(result.gas_limit, scale_gas(BATCH_GAS_PER_ENTRY, 1.2))

    def test_nothing_valid_nothing_submitted(self):
        _, hashlock = generate_secret()
        wrong, _ = generate_secret()
        a = self.lock(hashlock)
        sent = len(self.w3.eth.sent)
        result = self.htlc.batch_withdraw(self.bob, [a.contract_id, "0x12"], [wrong, wrong])
        self.assertEqual(len(self.w3.eth.sent), sent)
        self.assertIsNone(result.tx)
        self.assertEqual(result.succeeded, [])

    def test_stalled_receipt_reported_per_entry(self):
        """No receipt by the deadline: entries unconfirmed, handle kept."""
        s1, h1 = generate_secret()
        _, h2 = generate_secret()
        wrong, _ = generate_secret()
        a = self.lock(h1)
        b = self.lock(h2)
        self.w3.eth.stalled = True

        result = self.htlc.batch_withdraw(
            self.bob, [a.contract_id, b.contract_id], [s1, wrong],
            deadline=self.clock() + 30,
        )

        self.assertIsNotNone(result.tx)
        self.assertEqual(result.succeeded, [])
        self.assertIn("unconfirmed", result.entries[0].error)
        self.assertEqual(result.entries[0].tx, result.tx)
        self.assertIn("revert", result.entries[1].error)
        self.assertEqual(len(self.w3.eth.sent), 3)

        self.w3.eth.release()
        self.assertEqual(self.htlc.wait_confirmed(result.tx, self.clock() + 60), result.tx)

    def test_batch_not_sent_after_deadline(self):
        secret, hashlock = generate_secret()
        a = self.lock(hashlock)
        sent = len(self.w3.eth.sent)
        result = self.htlc.batch_withdraw(self.bob, [a.contract_id], [secret],
                                          deadline=self.clock() - 1)
        self.assertEqual(len(self.w3.eth.sent), sent)
        self.assertIsNone(result.tx)
        self.assertIn("not sent", result.entries[0].error)

    def test_length_mismatch(self):
        with self.assertRaises(InvalidArgument):
            self.htlc.batch_withdraw(self.bob, ["0x" + "00" * 32], [])
        with self.assertRaises(InvalidArgument):
            self.htlc.batch_withdraw(self.bob, [], [])


class TestRefund(EvmTestCase):

    def test_refund_before_expiry_reverts(self):
        _, hashlock = generate_secret()
        lock = self.lock(hashlock)
        with self.assertRaises(ContractRevert):
            self.htlc.refund(lock.contract_id, self.alice)

    def test_refund_after_expiry(self):
        _, hashlock = generate_secret()
        lock = self.lock(hashlock)
        self.clock.now = lock.timelock
        self.htlc.refund(lock.contract_id, self.alice)
        self.assertTrue(self.stored(lock.contract_id)["refunded"])


class TestTimeout(EvmTestCase):

    def test_lock_timeout_carries_handle_and_result(self):
        _, hashlock = generate_secret()
        self.w3.eth.stalled = True
        with self.assertRaises(Timeout) as ctx:
            self.lock(hashlock)
        err = ctx.exception
        self.assertEqual(err.handle.chain, "evm")
        self.assertEqual(err.result.tx, err.handle)
        self.assertIn(bytes.fromhex(err.result.contract_id[2:]), self.w3.htlc.locks)

    def test_wait_confirmed_rechecks_without_resubmitting(self):
        _, hashlock = generate_secret()
        self.w3.eth.stalled = True
        with self.assertRaises(Timeout) as ctx:
            self.lock(hashlock)
        self.w3.eth.release()
        handle = self.htlc.wait_confirmed(ctx.exception.handle, self.clock() + 60)
        self.assertEqual(handle, ctx.exception.handle)
        self.assertEqual(len(self.w3.eth.sent), 1)

    def test_deadline_already_passed(self):
        """Nothing is broadcast once the deadline is gone."""
        _, hashlock = generate_secret()
        with self.assertRaises(Timeout) as ctx:
            self.lock(hashlock, deadline=self.clock() - 1)
        self.assertIsNone(ctx.exception.handle)
        self.assertEqual(self.w3.eth.sent, [])
        self.assertEqual(self.w3.htlc.locks, {})


if __name__ == "__main__":
    unittest.main()
