"""Exception and warning types raised by *pyflower*."""
from __future__ import annotations

__all__ = [
    "FlowerError",
    "InvalidConfiguration",
    "InvalidHeader",
    "UndersizedFilterWarning",
]


class FlowerError(Exception):
    """Base class for all pyflower errors."""


class InvalidConfiguration(FlowerError, ValueError):
    """Filter parameters are out of range (bit width, hash count, sizes)."""


class InvalidHeader(FlowerError):
    """No recognised ``[version, magic, b, k]`` header at the start of a stream.

    ``from_stream`` *returns* an instance of this class instead of raising it;
    the file helpers and ``BloomFilter.from_stream`` raise it.
    """

    def __init__(self, reason: str, header: bytes = b""):
        super().__init__(reason)
        self.reason = reason
        self.header = bytes(header[:4])

    def __repr__(self) -> str:
        return f"InvalidHeader({self.reason!r}, header={self.header!r})"


class UndersizedFilterWarning(UserWarning):
    """The filter is too small for the expected number of elements."""
