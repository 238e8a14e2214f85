"""Tests for the frame header codec and the length-limited reader."""

import io
from unittest.mock import MagicMock

import pytest

from pyrunner_ipc.errors import TruncatedPayloadError
from pyrunner_ipc.protocol.framing import (
    HEADER_SIZE,
    MAX_PAYLOAD_SIZE,
    FrameHeader,
    LimitedReader,
    build_frame,
    build_header,
    parse_header,
    read_full,
)
from pyrunner_ipc.protocol.messages import MessageType


class _TrickleStream(io.RawIOBase):
    """Raw stream that hands out at most one byte per read."""

    def __init__(self, data: bytes) -> None:
        self._data = io.BytesIO(data)

    def readable(self):
        return True

    def readinto(self, b):
        chunk = self._data.read(1)
        b[: len(chunk)] = chunk
        return len(chunk)


def test_header_size():
    assert HEADER_SIZE == 8


def test_build_header_layout():
    """Type then length, both little-endian u32."""
    header = build_header(MessageType.CONFIGURE, 5)
    assert header == b"\x01\x00\x00\x00\x05\x00\x00\x00"


def test_build_header_large_values():
    header = build_header(0xDEADBEEF, 0x01020304)
    assert header == b"\xEF\xBE\xAD\xDE\x04\x03\x02\x01"


def test_build_header_rejects_out_of_range():
    with pytest.raises(ValueError):
        build_header(-1, 0)
    with pytest.raises(ValueError):
        build_header(0x1_0000_0000, 0)
    with pytest.raises(ValueError):
        build_header(MessageType.LOG, MAX_PAYLOAD_SIZE + 1)
    with pytest.raises(ValueError):
        build_header(MessageType.LOG, -1)


def test_parse_header_known_type():
    header = parse_header(b"\x04\x00\x00\x00\x10\x00\x00\x00")
    assert header == FrameHeader(message_type=MessageType.LOG, length=16)
    assert isinstance(header.message_type, MessageType)


def test_parse_header_unknown_type_passes_through():
    """Types outside the reserved set come back as plain ints."""
    header = parse_header(b"\x2A\x00\x00\x00\x00\x00\x00\x00")
    assert header.message_type == 42
    assert not isinstance(header.message_type, MessageType)
    assert header.length == 0


def test_parse_header_wrong_size():
    with pytest.raises(ValueError):
        parse_header(b"\x01\x00\x00\x00")


def test_build_frame():
    frame = build_frame(MessageType.SHUTDOWN)
    assert frame == b"\x03\x00\x00\x00\x00\x00\x00\x00"

    frame = build_frame(MessageType.LOG, b"hi")
    assert frame == b"\x04\x00\x00\x00\x02\x00\x00\x00hi"


def test_frame_header_repr():
    r = repr(FrameHeader(message_type=MessageType.LOG, length=3))
    assert "LOG(4)" in r
    assert "length=3" in r


def test_read_full_loops_over_short_reads():
    stream = _TrickleStream(b"abcdefghij")
    assert read_full(stream, 8) == b"abcdefgh"


def test_read_full_short_on_eof():
    assert read_full(io.BytesIO(b"abc"), 8) == b"abc"


def test_limited_reader_stops_at_length():
    """Bytes past the limit are left on the source for the next reader."""
    source = io.BytesIO(b"hello world")
    reader = LimitedReader(source, 5)
    assert reader.read() == b"hello"
    assert reader.read() == b""
    assert reader.remaining == 0
    assert source.read() == b" world"


def test_limited_reader_partial_reads():
    reader = LimitedReader(io.BytesIO(b"abcdef"), 4)
    assert reader.read(3) == b"abc"
    assert reader.remaining == 1
    assert reader.read(3) == b"d"
    assert reader.read(3) == b""


def test_limited_reader_readinto():
    reader = LimitedReader(io.BytesIO(b"abcdef"), 4)
    buf = bytearray(10)
    assert reader.readinto(buf) == 4
    assert bytes(buf[:4]) == b"abcd"
    assert reader.readinto(buf) == 0


def test_limited_reader_zero_length():
    source = io.BytesIO(b"next")
    reader = LimitedReader(source, 0)
    assert reader.read() == b""
    assert reader.remaining == 0
    assert source.read() == b"next"


def test_limited_reader_over_trickling_source():
    reader = LimitedReader(_TrickleStream(b"abcdef"), 4)
    assert reader.read() == b"abcd"


def test_limited_reader_truncated_source():
    reader = LimitedReader(io.BytesIO(b"ab"), 5)
    assert reader.read(2) == b"ab"
    with pytest.raises(TruncatedPayloadError) as excinfo:
        reader.read(3)
    assert excinfo.value.remaining == 3
    assert isinstance(excinfo.value, EOFError)


def test_limited_reader_drain():
    source = io.BytesIO(b"abcdefXYZ")
    reader = LimitedReader(source, 6)
    reader.read(2)
    assert reader.drain() == 4
    assert reader.remaining == 0
    assert source.read() == b"XYZ"


def test_limited_reader_close_leaves_source_open():
    source = io.BytesIO(b"abc")
    reader = LimitedReader(source, 3)
    reader.close()
    assert not source.closed


def test_limited_reader_negative_length():
    with pytest.raises(ValueError):
        LimitedReader(io.BytesIO(), -1)


def test_limited_reader_on_exhausted_called_once():
    calls = []
    reader = LimitedReader(io.BytesIO(b"abcdef"), 4, on_exhausted=lambda: calls.append(1))
    reader.read(3)
    assert calls == []
    reader.read(3)
    assert calls == [1]
    reader.read(3)
    assert calls == [1]


def test_limited_reader_drain_non_blocking_source():
    """A source with nothing available makes drain raise instead of spinning."""
    source = MagicMock()
    source.read.return_value = None
    reader = LimitedReader(source, 4)
    with pytest.raises(BlockingIOError):
        reader.drain()
    assert reader.remaining == 4
