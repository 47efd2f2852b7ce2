"""Unit tests for the binary format and streaming reconstruction."""
import itertools

import pytest

import pyflower
from pyflower import BitArray, BloomFilter, InvalidHeader
from pyflower.codec import (
    HEADER_LOOKAHEAD,
    DecoderState,
    StreamDecoder,
    decode,
    deserialize,
    dump,
    dump_async,
    encode,
    from_async_stream,
    from_stream,
    load,
    load_async,
    serialize,
    to_stream,
)


@pytest.fixture
def sample_filter():
    """Filter with a few hundred values in it."""
    bf = pyflower.new(12, 300)
    bf.insert_many(f"item{i}" for i in range(300))
    return bf


def _rechunk(blob: bytes, size: int):
    for off in range(0, len(blob), size):
        yield blob[off:off + size]


def test_header_layout(sample_filter):
    """Header is version, magic, bit width and hash count."""
    blob = encode(sample_filter)
    assert blob[:4] == bytes([1, 42, 12, sample_filter.k])
    assert len(blob) == 4 + 4096 // 8
    assert blob[4:] == sample_filter.storage.to_bytes()


def test_to_stream_chunks():
    """First chunk is the header, the rest is the bit array."""
    bf = BloomFilter(17, 4)
    chunks = list(to_stream(bf))
    assert chunks[0] == bytes([1, 42, 17, 4])
    assert len(chunks) == 3  # 16 KiB body in 8 KiB chunks
    assert b"".join(chunks[1:]) == bf.storage.to_bytes()


def test_round_trip(sample_filter):
    """Streaming out and back in yields an identical filter."""
    restored = from_stream(to_stream(sample_filter))
    assert isinstance(restored, BloomFilter)
    assert restored == sample_filter
    assert restored.bit_length == sample_filter.bit_length
    assert restored.k == sample_filter.k
    assert all(f"item{i}" in restored for i in range(300))


@pytest.mark.parametrize("size", [1, 3, 5, 99, 100, 101, 1000])
def test_round_trip_any_chunking(sample_filter, size):
    """Header and body may be split at arbitrary chunk boundaries."""
    blob = b"".join(to_stream(sample_filter))
    restored = from_stream(_rechunk(blob, size))
    assert restored == sample_filter


def test_body_goes_through_bulk_import(sample_filter, monkeypatch):
    """After the header, the remaining chunks are handed to BitArray.consume."""
    calls = []
    original = BitArray.consume

    def spy(self, chunks, offset=0):
        calls.append(offset)
        return original(self, chunks, offset)

    monkeypatch.setattr(BitArray, "consume", spy)
    blob = b"".join(to_stream(sample_filter))
    restored = from_stream(_rechunk(blob, 6))
    assert restored == sample_filter
    assert calls == [2]  # header chunk carried two body bytes


def test_round_trip_large_hash_count():
    bf = BloomFilter(8, 12)
    bf.insert(b"\x00\x01")
    restored = BloomFilter.from_stream(to_stream(bf))
    assert restored.k == 12
    assert b"\x00\x01" in restored


def test_invalid_header_is_returned():
    """Garbage is rejected once the lookahead window is full."""
    result = from_stream(_rechunk(bytes(200), 7))
    assert isinstance(result, InvalidHeader)
    assert result.header == bytes(4)


def test_lookahead_is_bounded():
    """An endless stream without a header stops being read after 100 bytes."""
    pulled = []

    def endless():
        for i in itertools.count():
            pulled.append(i)
            yield b"\xff" * 9

    result = from_stream(endless())
    assert isinstance(result, InvalidHeader)
    assert len(pulled) * 9 < HEADER_LOOKAHEAD + 9


@pytest.mark.parametrize(
    "header",
    [bytes([2, 42, 10, 3]), bytes([1, 43, 10, 3]), bytes([1, 42, 5, 3]),
     bytes([1, 42, 33, 3]), bytes([1, 42, 10, 0]), bytes([1, 42, 10, 17])],
)
def test_rejected_headers(header):
    result = from_stream([header, bytes(128)])
    assert isinstance(result, InvalidHeader)


def test_truncated_stream():
    """A stream that ends before the header is complete is rejected."""
    assert isinstance(from_stream([b"\x01", b"\x2a"]), InvalidHeader)
    assert isinstance(from_stream([]), InvalidHeader)


def test_short_body_leaves_bits_clear():
    bf = from_stream([bytes([1, 42, 6, 2]), b"\xff"])
    assert isinstance(bf, BloomFilter)
    assert bf.bits_set == 8
    assert bf.storage.get(7)
    assert not bf.storage.get(8)


def test_oversized_body():
    with pytest.raises(ValueError):
        from_stream([bytes([1, 42, 6, 2]), bytes(9)])


def test_class_from_stream_raises():
    with pytest.raises(InvalidHeader):
        BloomFilter.from_stream([bytes(100)])


def test_decoder_states():
    """The decoder walks AWAITING_HEADER -> STREAMING_BODY -> DONE."""
    decoder = StreamDecoder()
    assert decoder.feed(b"\x01\x2a") is DecoderState.AWAITING_HEADER
    assert decoder.feed(b"\x06\x03\x80") is DecoderState.STREAMING_BODY
    assert decoder.feed(bytes(7)) is DecoderState.STREAMING_BODY
    bf = decoder.finish()
    assert decoder.state is DecoderState.DONE
    assert bf.k == 3 and bf.bit_length == 64
    assert bf.storage.get(7)
    with pytest.raises(RuntimeError):
        decoder.feed(b"")


def test_decoder_failure_state():
    decoder = StreamDecoder(lookahead=8)
    assert decoder.feed(bytes(5)) is DecoderState.AWAITING_HEADER
    assert decoder.feed(bytes(5)) is DecoderState.FAILED
    assert isinstance(decoder.finish(), InvalidHeader)


def test_serialize_is_deprecated(sample_filter):
    with pytest.warns(DeprecationWarning):
        blob = serialize(sample_filter)
    assert blob == b"".join(to_stream(sample_filter))
    with pytest.warns(DeprecationWarning):
        assert deserialize(blob) == sample_filter


def test_decode_errors(sample_filter):
    blob = encode(sample_filter)
    with pytest.raises(InvalidHeader):
        decode(b"\x00" + blob[1:])
    with pytest.raises(ValueError):
        decode(blob[:-1])


def test_to_bytes_round_trip(sample_filter):
    assert BloomFilter.from_bytes(sample_filter.to_bytes()) == sample_filter


def test_file_round_trip(sample_filter, tmp_path):
    path = tmp_path / "filter.bloom"
    dump(sample_filter, path)
    assert path.stat().st_size == 4 + 512
    assert load(path) == sample_filter


def test_load_invalid_file(tmp_path):
    path = tmp_path / "garbage.bloom"
    path.write_bytes(b"not a bloom filter" * 10)
    with pytest.raises(InvalidHeader):
        load(path)


async def test_async_stream(sample_filter):
    """Async chunk sources are decoded the same way."""
    async def source():
        for chunk in _rechunk(b"".join(to_stream(sample_filter)), 3):
            yield chunk

    restored = await from_async_stream(source())
    assert restored == sample_filter


async def test_async_stream_invalid():
    async def source():
        while True:
            yield b"\x00\x00"

    assert isinstance(await from_async_stream(source()), InvalidHeader)


async def test_async_file_round_trip(sample_filter, tmp_path):
    path = tmp_path / "async.bloom"
    await dump_async(sample_filter, path)
    assert await load_async(path) == sample_filter
