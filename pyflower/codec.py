"""Binary format of a Bloom filter.

    ┌─────────┬─────────┬─────────┬─────────┬──────────────────────────┐
    │ u8 vsn  │ u8 42   │ u8 b    │ u8 k    │ bit array, 2^(b-3) bytes │
    └─────────┴─────────┴─────────┴─────────┴──────────────────────────┘

• *vsn*:   format version, currently 1
• *42*:    magic byte
• *b*:     bit width, the filter holds 2^b bits
• *k*:     number of hash functions

Streams are written as the header chunk followed by the bit array chunks.
Readers may receive the header split across any number of chunks, so the
decoder buffers up to ``HEADER_LOOKAHEAD`` bytes before giving up. Once the
header is known every further byte goes straight into the bit array.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import struct
import warnings
from collections.abc import AsyncIterable, Iterable, Iterator
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .bitarray import CHUNK_SIZE, BitArray
from .bloom import BloomFilter
from .errors import InvalidHeader
from .hashing import MAX_HASH_COUNT
from .sizing import MAX_BIT_WIDTH, MIN_BIT_WIDTH

__all__ = [
    "SER_VERSION",
    "MAGIC",
    "HEADER_LOOKAHEAD",
    "DecoderState",
    "StreamDecoder",
    "encode",
    "decode",
    "serialize",
    "deserialize",
    "to_stream",
    "from_stream",
    "from_async_stream",
    "dump",
    "load",
    "dump_async",
    "load_async",
]

logger = logging.getLogger(__name__)

# Constants
SER_VERSION = 1
MAGIC = 42
HEADER_LOOKAHEAD = 100  # bytes buffered while looking for a header
_HEADER = struct.Struct("!BBBB")  # vsn, magic, b, k

PathLike = Union[str, Path]


# ------------------------------------------------------------------
# Header
# ------------------------------------------------------------------
def _header(bf: BloomFilter) -> bytes:
    return _HEADER.pack(SER_VERSION, MAGIC, bf.bit_width, bf.k)


def _parse_header(buf: bytes) -> Optional[tuple[int, int]]:
    """Return ``(b, k)`` if *buf* starts with a valid header, else ``None``."""
    if len(buf) < _HEADER.size:
        return None
    vsn, magic, b, k = _HEADER.unpack_from(buf)
    if vsn != SER_VERSION or magic != MAGIC:
        return None
    if not MIN_BIT_WIDTH <= b <= MAX_BIT_WIDTH or not 1 <= k <= MAX_HASH_COUNT:
        return None
    return b, k


# ------------------------------------------------------------------
# Single shot
# ------------------------------------------------------------------
def encode(bf: BloomFilter) -> bytes:
    """Header and body as one ``bytes`` object."""
    return _header(bf) + bf.storage.to_bytes()


def decode(blob: bytes) -> BloomFilter:
    """Inverse of :func:`encode`; the body must have exactly the announced size."""
    parsed = _parse_header(blob)
    if parsed is None:
        raise InvalidHeader("blob does not start with a valid header", blob)
    b, k = parsed
    body = blob[_HEADER.size:]
    if len(body) != 1 << (b - 3):
        raise ValueError(f"expected {1 << (b - 3)} body bytes for b={b}, got {len(body)}")
    return BloomFilter._wrap(BitArray.from_bytes(body), k)


def serialize(bf: BloomFilter) -> bytes:
    """Deprecated single-shot encoder, use :func:`to_stream`."""
    warnings.warn("serialize() is unstable, use to_stream()", DeprecationWarning, stacklevel=2)
    return encode(bf)


def deserialize(blob: bytes) -> BloomFilter:
    """Deprecated single-shot decoder, use :func:`from_stream`."""
    warnings.warn("deserialize() is unstable, use from_stream()", DeprecationWarning, stacklevel=2)
    return decode(blob)


# ------------------------------------------------------------------
# Streaming
# ------------------------------------------------------------------
def to_stream(bf: BloomFilter) -> Iterator[bytes]:
    """Yield the header chunk, then the bit array chunk by chunk."""
    yield _header(bf)
    yield from bf.storage.chunks()


class DecoderState(enum.Enum):
    """States of :class:`StreamDecoder`."""
    AWAITING_HEADER = 0
    STREAMING_BODY = 1
    DONE = 2
    FAILED = 3


class StreamDecoder:
    """Push-based reconstruction of a filter from byte chunks.

    Feed chunks with :meth:`feed`, then call :meth:`finish`. Transport
    agnostic: the sync and async readers below are thin loops around it.

    Parameters
    ----------
    lookahead: int
        Maximum number of bytes buffered while waiting for the header.
    """

    def __init__(self, lookahead: int = HEADER_LOOKAHEAD) -> None:
        self.state = DecoderState.AWAITING_HEADER
        self.result: Union[BloomFilter, InvalidHeader, None] = None
        self._lookahead = lookahead
        self._buf = bytearray()
        self._filter: Optional[BloomFilter] = None
        self._offset = 0  # bytes of body written so far

    def feed(self, chunk: bytes) -> DecoderState:
        if self.state is DecoderState.AWAITING_HEADER:
            self._buf += chunk
            self._try_header()
        elif self.state is DecoderState.STREAMING_BODY:
            self._write_body(chunk)
        else:
            raise RuntimeError(f"cannot feed a decoder in state {self.state.name}")
        return self.state

    def finish(self) -> Union[BloomFilter, InvalidHeader]:
        """Signal end of input and return the filter or the header error."""
        if self.state is DecoderState.AWAITING_HEADER:
            self._fail(f"stream ended after {len(self._buf)} bytes without a header")
        elif self.state is DecoderState.STREAMING_BODY:
            logger.debug("decoded %d body bytes for %r", self._offset, self._filter)
            self.state = DecoderState.DONE
            self.result = self._filter
        assert self.result is not None
        return self.result

    def consume(self, chunks: Iterable[bytes]) -> None:
        """Pipe the rest of the body straight into the bit array."""
        if self.state is not DecoderState.STREAMING_BODY:
            raise RuntimeError(f"cannot consume body in state {self.state.name}")
        assert self._filter is not None
        self._offset = self._filter.storage.consume(chunks, self._offset)

    # internal --------------------------------------------------------
    def _try_header(self) -> None:
        parsed = _parse_header(self._buf)
        if parsed is not None:
            b, k = parsed
            self._filter = BloomFilter._wrap(BitArray(1 << b), k)
            tail = bytes(self._buf[_HEADER.size:])
            self._buf.clear()
            self.state = DecoderState.STREAMING_BODY
            logger.debug("header found: b=%d k=%d", b, k)
            if tail:
                self._write_body(tail)
        elif len(self._buf) >= self._lookahead:
            self._fail(f"no valid header within the first {self._lookahead} bytes")

    def _write_body(self, chunk: bytes) -> None:
        assert self._filter is not None
        self._offset = self._filter.storage.or_chunk(chunk, self._offset)

    def _fail(self, reason: str) -> None:
        logger.warning("rejecting Bloom filter stream: %s", reason)
        self.result = InvalidHeader(reason, bytes(self._buf))
        self.state = DecoderState.FAILED
        self._buf.clear()


def from_stream(chunks: Iterable[bytes]) -> Union[BloomFilter, InvalidHeader]:
    """Rebuild a filter from *chunks*; returns ``InvalidHeader`` on a bad header.

    Chunks are pulled lazily. On success the iterable is consumed to the end.
    """
    decoder = StreamDecoder()
    it = iter(chunks)
    for chunk in it:
        state = decoder.feed(chunk)
        if state is DecoderState.FAILED:
            break
        if state is DecoderState.STREAMING_BODY:
            decoder.consume(it)
            break
    return decoder.finish()


async def from_async_stream(chunks: AsyncIterable[bytes]) -> Union[BloomFilter, InvalidHeader]:
    """Async variant of :func:`from_stream` for async chunk sources."""
    decoder = StreamDecoder()
    async for chunk in chunks:
        if decoder.feed(chunk) is DecoderState.FAILED:
            break
    return decoder.finish()


# ------------------------------------------------------------------
# Files 💾
# ------------------------------------------------------------------
def _read_chunks(fp: BinaryIO, size: int = CHUNK_SIZE) -> Iterator[bytes]:
    while chunk := fp.read(size):
        yield chunk


def dump(bf: BloomFilter, path: PathLike) -> None:
    """Write *bf* to *path* chunk by chunk."""
    with open(path, "wb") as fp:
        for chunk in to_stream(bf):
            fp.write(chunk)


def load(path: PathLike) -> BloomFilter:
    """Read a filter written by :func:`dump`; raises ``InvalidHeader``."""
    with open(path, "rb") as fp:
        result = from_stream(_read_chunks(fp))
    if isinstance(result, InvalidHeader):
        raise result
    return result


async def dump_async(bf: BloomFilter, path: PathLike) -> None:
    await asyncio.to_thread(dump, bf, path)


async def load_async(path: PathLike) -> BloomFilter:
    return await asyncio.to_thread(load, path)
