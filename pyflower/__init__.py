"""PyFlower: a fixed-size Bloom filter with a streamable binary format.

The filter itself lives in `pyflower.BloomFilter`; `pyflower.new` and
`pyflower.new_by_byte_size` pick the hash count for an expected number of
elements, and `pyflower.codec` reads and writes the wire format.
"""

from __future__ import annotations

__all__ = [
    "BloomFilter",
    "BitArray",
    "new",
    "new_by_byte_size",
    "serialize",
    "to_stream",
    "from_stream",
    "from_async_stream",
    "dump",
    "load",
    "SIZE_TIERS",
    "InvalidConfiguration",
    "InvalidHeader",
    "UndersizedFilterWarning",
]

from .bitarray import BitArray
from .bloom import BloomFilter
from .codec import dump, from_async_stream, from_stream, load, serialize, to_stream
from .errors import InvalidConfiguration, InvalidHeader, UndersizedFilterWarning
from .sizing import SIZE_TIERS

new = BloomFilter.new
new_by_byte_size = BloomFilter.new_by_byte_size
