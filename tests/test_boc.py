#!/usr/bin/env python3
"""Cell, bag-of-cells and address codec tests."""

import sys
import os
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from htlc_swap.chains.boc import Address, Cell, begin_cell, cell_from_boc
from htlc_swap.errors import InvalidArgument, DecodeError

ZERO_HASH = bytes(32)


class TestCells(unittest.TestCase):

    def test_empty_cell_hash(self):
        self.assertEqual(
            Cell().hash().hex(),
            "96a296d224f285c67bee93c30f8a309157f0daa35dc5b87e410b78630a09cfc7",
        )

    def test_empty_cell_boc(self):
        self.assertEqual(Cell().to_boc().hex(), "b5ee9c72010101010002000000")

    def test_nested_roundtrip(self):
        leaf = begin_cell().store_uint(5, 3).end_cell()
        child = begin_cell().store_int(-42, 257).store_ref(leaf).end_cell()
        root = (begin_cell()
                .store_uint(0xDEADBEEF, 32)
                .store_coins(10 ** 9)
                .store_ref(child)
                .store_ref(leaf)
                .end_cell())

        parsed = cell_from_boc(root.to_boc())
        self.assertEqual(parsed.hash(), root.hash())
        self.assertEqual(parsed.depth, 2)

        body = parsed.begin_parse()
        self.assertEqual(body.read_uint(32), 0xDEADBEEF)
        self.assertEqual(body.read_coins(), 10 ** 9)
        inner = body.read_ref().begin_parse()
        self.assertEqual(inner.read_int(257), -42)
        self.assertEqual(inner.read_ref().begin_parse().read_uint(3), 5)
        self.assertEqual(len(body.read_ref().bits), 3)

    def test_shared_cells_serialized_once(self):
        leaf = begin_cell().store_uint(1, 8).end_cell()
        twice = begin_cell().store_ref(leaf).store_ref(leaf).end_cell()
        once = begin_cell().store_ref(leaf).end_cell()
        # one extra byte for the second reference only
        self.assertEqual(len(twice.to_boc()) - len(once.to_boc()), 1)

    def test_hash_depends_on_content(self):
        a = begin_cell().store_uint(1, 8).end_cell()
        b = begin_cell().store_uint(1, 8).end_cell()
        c = begin_cell().store_uint(1, 9).end_cell()
        self.assertEqual(a.hash(), b.hash())
        self.assertNotEqual(a.hash(), c.hash())

    def test_store_cell_appends(self):
        part = begin_cell().store_uint(3, 2).store_ref(Cell()).end_cell()
        cell = begin_cell().store_bit(1).store_cell(part).end_cell()
        self.assertEqual(len(cell.bits), 3)
        self.assertEqual(len(cell.refs), 1)


class TestBuilderLimits(unittest.TestCase):

    def test_bit_overflow(self):
        builder = begin_cell().store_bytes(b"\x00" * 127)
        builder.store_uint(0, 7)
        with self.assertRaises(InvalidArgument):
            builder.store_bit(1)

    def test_ref_overflow(self):
        builder = begin_cell()
        for _ in range(4):
            builder.store_ref(Cell())
        with self.assertRaises(InvalidArgument):
            builder.store_ref(Cell())

    def test_value_ranges(self):
        with self.assertRaises(InvalidArgument):
            begin_cell().store_uint(256, 8)
        with self.assertRaises(InvalidArgument):
            begin_cell().store_uint(-1, 8)
        with self.assertRaises(InvalidArgument):
            begin_cell().store_int(2 ** 256, 257)
        with self.assertRaises(InvalidArgument):
            begin_cell().store_coins(-1)

    def test_underflow(self):
        body = begin_cell().store_uint(1, 8).end_cell().begin_parse()
        with self.assertRaises(DecodeError):
            body.read_uint(9)
        with self.assertRaises(DecodeError):
            body.read_ref()


class TestBocParsing(unittest.TestCase):

    def test_bad_magic(self):
        with self.assertRaises(DecodeError):
            cell_from_boc(bytes.fromhex("deadbeef00"))

    def test_truncated(self):
        raw = begin_cell().store_uint(7, 64).end_cell().to_boc()
        for cut in (5, 10, len(raw) - 1):
            with self.assertRaises(DecodeError, msg=cut):
                cell_from_boc(raw[:cut])

    def test_exotic_rejected(self):
        raw = bytearray(Cell().to_boc())
        raw[-2] |= 0x08
        with self.assertRaises(DecodeError):
            cell_from_boc(bytes(raw))

    def test_backward_reference_rejected(self):
        root = begin_cell().store_ref(Cell()).end_cell()
        raw = bytearray(root.to_boc())
        # root's only reference points at itself
        raw[-3] = 0
        with self.assertRaises(DecodeError):
            cell_from_boc(bytes(raw))


class TestAddress(unittest.TestCase):

    def test_zero_address(self):
        address = Address(0, ZERO_HASH)
        self.assertEqual(address.to_string(),
                         "EQAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAM9c")

    def test_raw_and_friendly_forms(self):
        address = Address(-1, bytes(range(32)))
        raw = address.to_string(user_friendly=False)
        self.assertEqual(raw, "-1:" + bytes(range(32)).hex())
        self.assertEqual(Address.parse(raw), address)

        friendly = address.to_string()
        parsed = Address.parse(friendly)
        self.assertEqual(parsed, address)
        self.assertEqual(parsed.workchain, -1)
        self.assertTrue(parsed.bounceable)

    def test_flags(self):
        address = Address(0, b"\x01" * 32)
        parsed = Address.parse(address.to_string(bounceable=False, testnet=True))
        self.assertFalse(parsed.bounceable)
        self.assertTrue(parsed.testnet)
        self.assertEqual(parsed, address)

    def test_standard_base64_accepted(self):
        address = Address(0, b"\xfb\xff" * 16)
        friendly = address.to_string()
        standard = friendly.replace("-", "+").replace("_", "/")
        self.assertEqual(Address.parse(standard), address)

    def test_bad_checksum(self):
        friendly = Address(0, ZERO_HASH).to_string()
        broken = friendly[:-1] + ("d" if friendly[-1] != "d" else "e")
        with self.assertRaises(InvalidArgument):
            Address.parse(broken)

    def test_garbage(self):
        for bad in ("EQshort", "0:zz", "", None):
            with self.assertRaises(InvalidArgument, msg=repr(bad)):
                Address.parse(bad)

    def test_stored_address_layout(self):
        address = Address(0, b"\x07" * 32)
        body = begin_cell().store_address(address).store_address(None).end_cell()
        self.assertEqual(len(body.bits), 2 + 1 + 8 + 256 + 2)
        s = body.begin_parse()
        self.assertEqual(s.read_uint(2), 0b10)
        self.assertFalse(s.read_bit())
        self.assertEqual(s.read_int(8), 0)
        self.assertEqual(s.read_bytes(32), b"\x07" * 32)
        self.assertEqual(s.read_uint(2), 0)


if __name__ == "__main__":
    unittest.main()
