"""Bloom filter core.

Main properties:
    • ``2^b`` bits of storage, ``k`` offsets per value from one digest
    • no false negatives, bits are only ever turned on
    • serialisable to a 4-byte header + raw bit array (see :mod:`pyflower.codec`)

Values that are not ``bytes`` are msgpack encoded before hashing, so
``f.insert("alpha")`` and ``f.insert(b"alpha")`` are different members.
"""
from __future__ import annotations

import math
from collections.abc import Iterable, Iterator
from typing import Any

from .bitarray import BitArray
from .errors import InvalidHeader
from .hashing import digest_for, encode_value, offsets
from .sizing import (
    SizeSpec,
    bit_width_for_bytes,
    resolve_bit_width,
    select_hash_count,
)

__all__ = ["BloomFilter"]


class BloomFilter:
    """Fixed-size Bloom filter backed by a :class:`BitArray`."""

    def __init__(self, bit_width: int, hash_count: int):
        b = resolve_bit_width(bit_width)
        digest_for(hash_count)  # validates k
        self.k = hash_count
        self.mask = (1 << b) - 1
        self._bits = BitArray(1 << b)

    @classmethod
    def _wrap(cls, storage: BitArray, hash_count: int) -> "BloomFilter":
        """Build a filter around an existing bit array (used by the codec)."""
        bf = cls.__new__(cls)
        digest_for(hash_count)
        bf.k = hash_count
        bf.mask = storage.bit_length - 1
        bf._bits = storage
        return bf

    # -------------------------------------------------------
    # Construction helpers 🏗️
    # -------------------------------------------------------
    @classmethod
    def new(cls, size: SizeSpec, expected_elements: int) -> "BloomFilter":
        """Filter of ``2^size`` bits (or a tier name like ``"4 KB"``) sized for
        *expected_elements* insertions."""
        b = resolve_bit_width(size)
        return cls(b, select_hash_count(expected_elements, 1 << b))

    @classmethod
    def new_by_byte_size(cls, size: SizeSpec, expected_elements: int) -> "BloomFilter":
        """Largest filter that fits in *size* bytes (rounded down to a power of two)."""
        b = bit_width_for_bytes(size)
        return cls(b, select_hash_count(expected_elements, 1 << b))

    # -------------------------------------------------------
    # Hash helpers
    # -------------------------------------------------------
    def _positions(self, value: Any) -> Iterator[int]:
        for off in offsets(encode_value(value), self.k):
            yield off & self.mask

    # -------------------------------------------------------
    # API
    # -------------------------------------------------------
    def insert(self, value: Any) -> None:
        for pos in self._positions(value):
            self._bits.put(pos, True)

    add = insert

    def insert_many(self, values: Iterable[Any]) -> None:
        for value in values:
            self.insert(value)

    def query(self, value: Any) -> bool:
        """``False`` means *value* was never inserted; ``True`` means it may have been."""
        return all(self._bits.get(pos) for pos in self._positions(value))

    __contains__ = query

    def not_present(self, value: Any) -> bool:
        return not self.query(value)

    # -------------------------------------------------------
    # Statistics 📈
    # -------------------------------------------------------
    @property
    def bit_length(self) -> int:
        return self._bits.bit_length

    @property
    def bit_width(self) -> int:
        return self._bits.bit_length.bit_length() - 1

    @property
    def bits_set(self) -> int:
        return self._bits.count_ones()

    @property
    def fill_ratio(self) -> float:
        return self.bits_set / self.bit_length

    def false_positive_probability(self) -> float:
        """Current false positive probability, ``fill_ratio ** k``.

        Counts every bit; avoid calling it on hot paths for large filters.
        """
        return self.fill_ratio ** self.k

    def estimate_cardinality(self) -> int:
        """Estimated number of distinct values inserted so far.

        Counts every bit; loses accuracy as the filter saturates. A completely
        full filter reports its bit length.
        """
        bits = self.bit_length
        ones = self.bits_set
        if ones >= bits:
            return bits
        return round(-math.log(1 - ones / bits) * bits / self.k)

    # -------------------------------------------------------
    # Serialisation 📦
    # -------------------------------------------------------
    @property
    def storage(self) -> BitArray:
        return self._bits

    def to_bytes(self) -> bytes:
        from .codec import encode

        return encode(self)

    @classmethod
    def from_bytes(cls, blob: bytes) -> "BloomFilter":
        from .codec import decode

        return decode(blob)

    def to_stream(self) -> Iterator[bytes]:
        from .codec import to_stream

        return to_stream(self)

    @classmethod
    def from_stream(cls, chunks: Iterable[bytes]) -> "BloomFilter":
        """Like :func:`pyflower.codec.from_stream` but raises ``InvalidHeader``."""
        from .codec import from_stream

        result = from_stream(chunks)
        if isinstance(result, InvalidHeader):
            raise result
        return result

    # -------------------------------------------------------
    # Dunder helpers
    # -------------------------------------------------------
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BloomFilter):
            return NotImplemented
        return self.k == other.k and self._bits == other._bits

    def __repr__(self) -> str:  # pragma: no cover
        return f"BloomFilter<bits={self.bit_length}, k={self.k}>"
