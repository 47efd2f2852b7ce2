"""Value encoding and hash-to-offset derivation.

One cryptographic digest per value is sliced into big-endian 32-bit words,
giving up to 8 offsets from SHA-256 or up to 16 from SHA-512:

    ┌────────┬────────┬────────┬─────┬────────┐
    │ word 0 │ word 1 │ word 2 │ ... │ word 7 │   sha256 (k <= 8)
    └────────┴────────┴────────┴─────┴────────┘

Non-binary values are turned into bytes with *msgpack* first.
"""
from __future__ import annotations

import hashlib
import struct
from typing import Any, Callable

import msgpack

from .errors import InvalidConfiguration

__all__ = ["offsets", "digest_for", "encode_value", "MAX_HASH_COUNT", "BIGINT_EXT"]

MAX_HASH_COUNT = 16
BIGINT_EXT = 1  # msgpack ext code for ints outside the 64-bit range
_INT_MIN, _INT_MAX = -(1 << 63), (1 << 64) - 1


def digest_for(k: int) -> Callable[[bytes], Any]:
    """Return the hashlib constructor used for *k* hash functions."""
    if not 1 <= k <= MAX_HASH_COUNT:
        raise InvalidConfiguration(f"hash count must be in [1, {MAX_HASH_COUNT}], got {k}")
    return hashlib.sha256 if k <= 8 else hashlib.sha512


def offsets(value: bytes, k: int) -> list[int]:
    """First *k* unsigned 32-bit words of the digest of *value*."""
    digest = digest_for(k)(value).digest()
    return list(struct.unpack_from(f"!{k}I", digest))


# -------------------------------------------------------
# Canonical encoding
# -------------------------------------------------------
def _canonical_key(key: Any) -> Any:
    if isinstance(key, int) and not isinstance(key, bool) and not _INT_MIN <= key <= _INT_MAX:
        return _canonical(key)
    return key


def _canonical(value: Any) -> Any:
    if isinstance(value, msgpack.ExtType):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if _INT_MIN <= value <= _INT_MAX:
            return value
        # signed big-endian two's complement, minimal length
        return msgpack.ExtType(BIGINT_EXT, value.to_bytes((value.bit_length() + 8) // 8, "big", signed=True))
    if isinstance(value, dict):
        items = [(_canonical_key(k), _canonical(v)) for k, v in value.items()]
        items.sort(key=lambda kv: msgpack.packb(_canonical(kv[0]), use_bin_type=True))
        return dict(items)
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def encode_value(value: Any) -> bytes:
    """Bytes that are hashed for *value*.

    Binary input is used as-is. Anything else is msgpack encoded with dict
    keys in a fixed order, so equal values always hash the same way. Ints
    beyond the 64-bit range become a ``BIGINT_EXT`` extension holding their
    signed big-endian bytes.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return msgpack.packb(_canonical(value), use_bin_type=True)
