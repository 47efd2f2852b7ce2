"""Fixed-length bit array used as Bloom filter storage.

Bits are packed into a ``bytearray``: bit *i* lives in byte ``i // 8`` under
mask ``1 << (i % 8)``. The same byte order is used for the exported body of
the wire format, so ``to_bytes`` / ``chunks`` are plain slices of the buffer.

The array never grows or shrinks after creation.
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import ClassVar

__all__ = ["BitArray", "CHUNK_SIZE"]

CHUNK_SIZE = 8192  # bytes per exported chunk


class BitArray:
    """Packed array of ``length`` bits, ``length`` a power of two."""

    __slots__ = ("_length", "_bits")

    _MIN_LENGTH: ClassVar[int] = 8

    def __init__(self, length: int):
        if length < self._MIN_LENGTH or length & (length - 1):
            raise ValueError(f"bit array length must be a power of two >= 8, got {length}")
        self._length = length
        self._bits = bytearray(length // 8)

    # -------------------------------------------------------
    # Bit access
    # -------------------------------------------------------
    def _check(self, index: int) -> None:
        if not 0 <= index < self._length:
            raise IndexError(f"bit index {index} out of range [0, {self._length})")

    def get(self, index: int) -> bool:
        self._check(index)
        return bool(self._bits[index >> 3] & (1 << (index & 7)))

    def put(self, index: int, value: bool) -> None:
        self._check(index)
        if value:
            self._bits[index >> 3] |= 1 << (index & 7)
        else:
            self._bits[index >> 3] &= ~(1 << (index & 7)) & 0xFF

    @property
    def bit_length(self) -> int:
        return self._length

    def count_ones(self) -> int:
        """Population count. O(n) in the array size."""
        return int.from_bytes(self._bits, "little").bit_count()

    # -------------------------------------------------------
    # Bulk export / import
    # -------------------------------------------------------
    def to_bytes(self) -> bytes:
        return bytes(self._bits)

    @classmethod
    def from_bytes(cls, blob: bytes) -> "BitArray":
        arr = cls(len(blob) * 8)
        arr._bits[:] = blob
        return arr

    def chunks(self, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        """Lazily yield the whole array as consecutive byte chunks."""
        view = memoryview(self._bits)
        for off in range(0, len(view), chunk_size):
            yield bytes(view[off:off + chunk_size])

    def consume(self, chunks: Iterable[bytes], offset: int = 0) -> int:
        """OR incoming byte chunks into the array starting at byte *offset*.

        Consumes *chunks* to completion and returns the offset after the last
        byte. A body shorter than the array leaves the remaining bits untouched.
        """
        for chunk in chunks:
            offset = self.or_chunk(chunk, offset)
        return offset

    def or_chunk(self, chunk: bytes, offset: int) -> int:
        """OR a single chunk in at byte *offset*; return the next offset."""
        end = offset + len(chunk)
        if end > len(self._bits):
            raise ValueError(f"body overflows bit array ({end} > {len(self._bits)} bytes)")
        target = self._bits[offset:end]
        merged = int.from_bytes(target, "little") | int.from_bytes(chunk, "little")
        self._bits[offset:end] = merged.to_bytes(len(chunk), "little")
        return end

    # -------------------------------------------------------
    # Dunder helpers
    # -------------------------------------------------------
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BitArray):
            return NotImplemented
        return self._length == other._length and self._bits == other._bits

    def __repr__(self) -> str:  # pragma: no cover
        return f"BitArray<{self._length} bits>"
