"""Sizing policy: pick the bit width and the number of hash functions.

A filter always holds ``2^b`` bits with ``6 <= b <= 32`` (8 bytes .. 512 MB).
The hash count is the ``k`` in ``[1, 16]`` that minimises the classic
estimate ``(1 - e^(-k*n/m))^k`` for ``n`` expected elements and ``m`` bits.

    b  | size      b  | size      b  | size
    ---+--------   ---+--------   ---+--------
     6 | 8 Byte    13 | 1 KB      23 | 1 MB
     7 | 16 Byte   14 | 2 KB      24 | 2 MB
    .. | ..        .. | ..        .. | ..
    12 | 512 Byte  22 | 512 KB    32 | 512 MB
"""
from __future__ import annotations

import logging
import math
import warnings
from typing import Union

from .errors import InvalidConfiguration, UndersizedFilterWarning
from .hashing import MAX_HASH_COUNT

__all__ = [
    "SIZE_TIERS",
    "MIN_BIT_WIDTH",
    "MAX_BIT_WIDTH",
    "false_positive_rate",
    "select_hash_count",
    "resolve_bit_width",
    "bit_width_for_bytes",
]

logger = logging.getLogger(__name__)

MIN_BIT_WIDTH = 6
MAX_BIT_WIDTH = 32

SIZE_TIERS: tuple[str, ...] = tuple(
    f"{1 << i} {unit}"
    for unit, exps in (("Byte", range(3, 10)), ("KB", range(10)), ("MB", range(10)))
    for i in exps
)

SizeSpec = Union[int, str]


def _check_int(name: str, value: object) -> int:
    # bool is an int subclass; True must not silently mean 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfiguration(f"{name} must be an int, got {value!r}")
    return value


def false_positive_rate(n: int, m: int, k: int) -> float:
    """Closed-form false positive estimate for *n* items, *m* bits, *k* hashes."""
    try:
        load = n / m
    except OverflowError:
        load = math.inf
    return (1.0 - math.exp(-k * load)) ** k


def select_hash_count(expected_elements: int, bits: int) -> int:
    """Hash count in ``[1, 16]`` with the lowest theoretical FP rate.

    Ties resolve to the smallest ``k``. A result of 1 means the filter is
    too small to be useful; an :class:`UndersizedFilterWarning` is emitted
    but the value is still returned.
    """
    n = _check_int("expected_elements", expected_elements)
    if n <= 0:
        raise InvalidConfiguration(f"expected_elements must be positive, got {n}")
    if _check_int("bits", bits) <= 0:
        raise InvalidConfiguration(f"bits must be positive, got {bits}")

    k = min(range(1, MAX_HASH_COUNT + 1), key=lambda h: false_positive_rate(n, bits, h))
    logger.debug("selected k=%d for n=%d, m=%d (fp≈%.3g)", k, n, bits, false_positive_rate(n, bits, k))
    if k == 1:
        logger.warning("Bloom filter of %d bits is too small for %d expected elements", bits, n)
        warnings.warn(
            "Your Bloom filter is too small for the expected number of elements!",
            UndersizedFilterWarning,
            stacklevel=3,
        )
    return k


def _check_width(b: int) -> int:
    if not MIN_BIT_WIDTH <= b <= MAX_BIT_WIDTH:
        raise InvalidConfiguration(
            f"bit width must be in [{MIN_BIT_WIDTH}, {MAX_BIT_WIDTH}], got {b}"
        )
    return b


def _tier_width(tier: str) -> int:
    try:
        return MIN_BIT_WIDTH + SIZE_TIERS.index(tier)
    except ValueError:
        raise InvalidConfiguration(f"unknown size tier {tier!r}") from None


def resolve_bit_width(size: SizeSpec) -> int:
    """Bit width from an explicit ``b`` or a tier name such as ``"1 KB"``."""
    if isinstance(size, str):
        return _tier_width(size)
    return _check_width(_check_int("bit width", size))


def bit_width_for_bytes(size: SizeSpec) -> int:
    """Largest bit width whose filter fits in *size* bytes (or a tier name)."""
    if isinstance(size, str):
        return _tier_width(size)
    nbytes = _check_int("byte budget", size)
    if nbytes <= 0:
        raise InvalidConfiguration(f"byte budget must be positive, got {nbytes}")
    # floor(log2(nbytes * 8)) without float rounding
    return _check_width((nbytes * 8).bit_length() - 1)
