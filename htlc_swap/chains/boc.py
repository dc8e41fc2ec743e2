"""
TON cells, bag-of-cells codec and addresses.

The subset of the TVM data model htlc-swap needs:
- Builder / Cell / Slice over bitarray bit strings
- representation hash of ordinary cells (what wallets sign)
- BoC serialization with a single root, and parsing of any ordinary BoC
- std addresses in raw (wc:hex) and user-friendly (base64url) form

    body = begin_cell().store_uint(op, 32).store_int(commit_id, 257).end_cell()
    raw = body.to_boc()
    cell_from_boc(raw).begin_parse().read_uint(32) == op
"""

import base64
import binascii
import hashlib
from typing import List, Optional

from bitarray import bitarray
from bitarray.util import int2ba, ba2int

from ..errors import InvalidArgument, DecodeError

MAX_BITS = 1023
MAX_REFS = 4

BOC_MAGIC = bytes.fromhex("b5ee9c72")

# user-friendly address tags
TAG_BOUNCEABLE = 0x11
TAG_NON_BOUNCEABLE = 0x51
TAG_TESTNET = 0x80


# =============================================================================
# Addresses
# =============================================================================

class Address:
    """Standard (addr_std) TON address."""

    def __init__(self, workchain: int, hash_part: bytes,
                 bounceable: bool = True, testnet: bool = False):
        if len(hash_part) != 32:
            raise InvalidArgument(f"Address hash must be 32 bytes, got {len(hash_part)}")
        if not -128 <= workchain <= 127:
            raise InvalidArgument(f"Invalid workchain: {workchain}")
        self.workchain = workchain
        self.hash_part = bytes(hash_part)
        self.bounceable = bounceable
        self.testnet = testnet

    @classmethod
    def parse(cls, value: str) -> "Address":
        """Accept raw `wc:hex` or 48 char user-friendly form (url-safe or not)."""
        if not isinstance(value, str):
            raise InvalidArgument(f"Invalid TON address {value!r}")
        if ":" in value:
            workchain, _, hash_hex = value.partition(":")
            try:
                return cls(int(workchain), bytes.fromhex(hash_hex))
            except ValueError:
                raise InvalidArgument(f"Invalid raw TON address {value!r}")

        try:
            raw = base64.urlsafe_b64decode(
                value.replace("+", "-").replace("/", "_") + "=" * (-len(value) % 4)
            )
        except (ValueError, binascii.Error):
            raise InvalidArgument(f"Invalid TON address {value!r}")
        if len(raw) != 36:
            raise InvalidArgument(f"Invalid TON address length: {value!r}")
        if binascii.crc_hqx(raw[:34], 0).to_bytes(2, "big") != raw[34:]:
            raise InvalidArgument(f"Bad TON address checksum: {value!r}")

        tag = raw[0]
        testnet = bool(tag & TAG_TESTNET)
        tag &= ~TAG_TESTNET
        if tag not in (TAG_BOUNCEABLE, TAG_NON_BOUNCEABLE):
            raise InvalidArgument(f"Unknown TON address tag 0x{raw[0]:02x}")
        workchain = raw[1] if raw[1] < 128 else raw[1] - 256
        return cls(workchain, raw[2:34], tag == TAG_BOUNCEABLE, testnet)

    def to_string(self, user_friendly: bool = True, bounceable: Optional[bool] = None,
                  testnet: Optional[bool] = None) -> str:
        if not user_friendly:
            return f"{self.workchain}:{self.hash_part.hex()}"
        if bounceable is None:
            bounceable = self.bounceable
        if testnet is None:
            testnet = self.testnet

        tag = TAG_BOUNCEABLE if bounceable else TAG_NON_BOUNCEABLE
        if testnet:
            tag |= TAG_TESTNET
        raw = bytes([tag, self.workchain & 0xFF]) + self.hash_part
        raw += binascii.crc_hqx(raw, 0).to_bytes(2, "big")
        return base64.urlsafe_b64encode(raw).decode()

    def __eq__(self, other) -> bool:
        if not isinstance(other, Address):
            return NotImplemented
        return (self.workchain, self.hash_part) == (other.workchain, other.hash_part)

    def __hash__(self) -> int:
        return hash((self.workchain, self.hash_part))

    def __repr__(self) -> str:
        return f"Address({self.to_string(False)})"


# =============================================================================
# Cells
# =============================================================================

class Cell:
    """Ordinary cell: up to 1023 data bits and 4 references."""

    def __init__(self, bits: Optional[bitarray] = None, refs: Optional[List["Cell"]] = None):
        self.bits = bits if bits is not None else bitarray(endian="big")
        self.refs = list(refs or [])

    def begin_parse(self) -> "Slice":
        return Slice(self)

    @property
    def depth(self) -> int:
        if not self.refs:
            return 0
        return 1 + max(ref.depth for ref in self.refs)

    def _descriptors(self) -> bytes:
        n = len(self.bits)
        return bytes([len(self.refs), (n + 7) // 8 + n // 8])

    def _data(self) -> bytes:
        """Data bytes, completed with a 1 bit and zeros when not byte aligned."""
        bits = self.bits.copy()
        if len(bits) % 8:
            bits.append(1)
        return bits.tobytes()

    def hash(self) -> bytes:
        """Representation hash (level 0)."""
        data = self._descriptors() + self._data()
        for ref in self.refs:
            data += ref.depth.to_bytes(2, "big")
        for ref in self.refs:
            data += ref.hash()
        return hashlib.sha256(data).digest()

    def to_boc(self) -> bytes:
        """Serialize as a single-root BoC without index or crc."""
        # reverse DFS post-order: parents before children, root first
        order: List[Cell] = []
        seen = set()

        def visit(cell: "Cell"):
            key = cell.hash()
            if key in seen:
                return
            seen.add(key)
            for ref in cell.refs:
                visit(ref)
            order.append(cell)

        visit(self)
        order.reverse()
        index = {cell.hash(): i for i, cell in enumerate(order)}

        size = max(1, (len(order).bit_length() + 7) // 8)
        payload = b""
        for cell in order:
            payload += cell._descriptors() + cell._data()
            for ref in cell.refs:
                payload += index[ref.hash()].to_bytes(size, "big")
        off = max(1, (len(payload).bit_length() + 7) // 8)

        header = BOC_MAGIC + bytes([size, off])
        header += len(order).to_bytes(size, "big")     # cells
        header += (1).to_bytes(size, "big")            # roots
        header += (0).to_bytes(size, "big")            # absent
        header += len(payload).to_bytes(off, "big")
        header += (0).to_bytes(size, "big")            # root index
        return header + payload

    def __repr__(self) -> str:
        return f"Cell(bits={len(self.bits)}, refs={len(self.refs)})"


class Builder:
    """Append-only cell builder; every store_* returns self."""

    def __init__(self):
        self.bits = bitarray(endian="big")
        self.refs: List[Cell] = []

    def _reserve(self, n: int):
        if len(self.bits) + n > MAX_BITS:
            raise InvalidArgument(f"Cell overflow: {len(self.bits)} + {n} bits > {MAX_BITS}")

    def store_bit(self, bit) -> "Builder":
        self._reserve(1)
        self.bits.append(1 if bit else 0)
        return self

    def store_uint(self, value: int, n: int) -> "Builder":
        if value < 0 or value >> n:
            raise InvalidArgument(f"{value} does not fit in uint{n}")
        self._reserve(n)
        if n:
            self.bits.extend(int2ba(value, length=n, endian="big"))
        return self

    def store_int(self, value: int, n: int) -> "Builder":
        if n < 1 or not -(1 << (n - 1)) <= value < (1 << (n - 1)):
            raise InvalidArgument(f"{value} does not fit in int{n}")
        self._reserve(n)
        self.bits.extend(int2ba(value, length=n, endian="big", signed=True))
        return self

    def store_bytes(self, data: bytes) -> "Builder":
        self._reserve(len(data) * 8)
        self.bits.frombytes(bytes(data))
        return self

    def store_coins(self, amount: int) -> "Builder":
        """VarUInteger 16: 4 bit byte length, then the value."""
        if amount < 0:
            raise InvalidArgument(f"Negative coin amount: {amount}")
        length = (amount.bit_length() + 7) // 8
        if length > 15:
            raise InvalidArgument(f"Coin amount too large: {amount}")
        self.store_uint(length, 4)
        return self.store_uint(amount, length * 8)

    def store_address(self, address: Optional[Address]) -> "Builder":
        """addr_std without anycast, or addr_none for None."""
        if address is None:
            return self.store_uint(0, 2)
        return (self.store_uint(0b10, 2)
                .store_bit(0)
                .store_int(address.workchain, 8)
                .store_bytes(address.hash_part))

    def store_ref(self, cell: Cell) -> "Builder":
        if len(self.refs) >= MAX_REFS:
            raise InvalidArgument("Cell already has 4 references")
        self.refs.append(cell)
        return self

    def store_cell(self, cell: Cell) -> "Builder":
        """Append another cell's bits and references."""
        self._reserve(len(cell.bits))
        if len(self.refs) + len(cell.refs) > MAX_REFS:
            raise InvalidArgument("Too many references")
        self.bits.extend(cell.bits)
        self.refs.extend(cell.refs)
        return self

    def end_cell(self) -> Cell:
        return Cell(self.bits.copy(), list(self.refs))


def begin_cell() -> Builder:
    return Builder()


class Slice:
    """Sequential reader over a cell."""

    def __init__(self, cell: Cell):
        self.bits = cell.bits
        self.refs = cell.refs
        self.pos = 0
        self.ref_pos = 0

    @property
    def remaining_bits(self) -> int:
        return len(self.bits) - self.pos

    def _take(self, n: int) -> bitarray:
        if n > self.remaining_bits:
            raise DecodeError(f"Cell underflow: need {n} bits, {self.remaining_bits} left")
        chunk = self.bits[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def read_bit(self) -> bool:
        return bool(self._take(1)[0])

    def read_uint(self, n: int) -> int:
        if n == 0:
            return 0
        return ba2int(self._take(n))

    def read_int(self, n: int) -> int:
        return ba2int(self._take(n), signed=True)

    def read_bytes(self, n: int) -> bytes:
        return self._take(n * 8).tobytes()

    def read_coins(self) -> int:
        return self.read_uint(self.read_uint(4) * 8)

    def read_ref(self) -> Cell:
        if self.ref_pos >= len(self.refs):
            raise DecodeError("Cell has no more references")
        ref = self.refs[self.ref_pos]
        self.ref_pos += 1
        return ref


# =============================================================================
# BoC parsing
# =============================================================================

def cell_from_boc(data: bytes) -> Cell:
    """
    Root cell of a serialized bag of cells.

    Index and crc32c sections are skipped, not verified.

    Raises:
        DecodeError: not a BoC, truncated, exotic cells or bad references
    """
    data = bytes(data)
    if data[:4] != BOC_MAGIC:
        raise DecodeError("Not a BoC: bad magic")

    pos = 6
    if len(data) < pos:
        raise DecodeError("Truncated BoC header")
    flags = data[4]
    has_idx = flags & 0x80
    size = flags & 0x07
    off = data[5]
    if not 1 <= size <= 4 or not 1 <= off <= 8:
        raise DecodeError(f"Bad BoC size fields: size={size} off={off}")

    def read(n: int) -> int:
        nonlocal pos
        if pos + n > len(data):
            raise DecodeError("Truncated BoC")
        value = int.from_bytes(data[pos:pos + n], "big")
        pos += n
        return value

    cells_num = read(size)
    roots_num = read(size)
    read(size)                       # absent
    total = read(off)
    if roots_num < 1:
        raise DecodeError("BoC has no root")
    roots = [read(size) for _ in range(roots_num)]
    if has_idx:
        pos += cells_num * off
    if pos + total > len(data):
        raise DecodeError("Truncated BoC cell data")

    raw = []
    for _ in range(cells_num):
        d1, d2 = read(1), read(1)
        if d1 & 0x08:
            raise DecodeError("Exotic cells are not supported")
        nbytes = (d2 + 1) // 2
        if pos + nbytes > len(data):
            raise DecodeError("Truncated BoC cell data")
        bits = bitarray(endian="big")
        bits.frombytes(data[pos:pos + nbytes])
        pos += nbytes
        if d2 % 2:
            # strip completion tag: trailing zeros and the 1 before them
            while bits and not bits[-1]:
                bits.pop()
            if not bits:
                raise DecodeError("Missing completion tag in cell data")
            bits.pop()
        refs = [read(size) for _ in range(d1 & 0x07)]
        raw.append((bits, refs))

    cells: List[Optional[Cell]] = [None] * cells_num
    for i in reversed(range(cells_num)):
        bits, refs = raw[i]
        for ref in refs:
            if not i < ref < cells_num:
                raise DecodeError(f"Bad reference {ref} in cell {i}")
        cells[i] = Cell(bits, [cells[ref] for ref in refs])

    if roots[0] >= cells_num:
        raise DecodeError("Bad root index")
    return cells[roots[0]]
