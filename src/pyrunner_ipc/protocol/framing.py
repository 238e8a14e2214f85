"""Frame header codec and the length-limited payload reader.

Frame layout::

    +--------------+--------------+---------------------------+
    | Message Type | Length       |          Payload          |
    | 4 bytes (LE) | 4 bytes (LE) |       Length bytes        |
    +--------------+--------------+---------------------------+

- Message Type: unsigned 32-bit tag, passed through uninterpreted
- Length: unsigned 32-bit count of payload bytes that follow the header
- Payload: opaque bytes, possibly empty
"""

from __future__ import annotations

import errno
import io
import struct
from dataclasses import dataclass
from typing import BinaryIO, Callable

from ..errors import TruncatedPayloadError
from .messages import MessageType, coerce_message_type, message_type_name

HEADER = struct.Struct("<II")
HEADER_SIZE = HEADER.size  # 8
MAX_PAYLOAD_SIZE = 0xFFFFFFFF
DRAIN_CHUNK_SIZE = 64 * 1024


@dataclass
class FrameHeader:
    """A parsed frame header."""

    message_type: MessageType | int
    length: int

    def __repr__(self) -> str:
        return (
            f"FrameHeader(message_type={message_type_name(self.message_type)}, "
            f"length={self.length})"
        )


def build_header(message_type: int, length: int) -> bytes:
    """Pack a frame header.

    Raises:
        ValueError: If either field does not fit in an unsigned 32-bit integer.
    """
    message_type = coerce_message_type(message_type)
    if not 0 <= length <= MAX_PAYLOAD_SIZE:
        raise ValueError(
            f"Payload length must be 0-{MAX_PAYLOAD_SIZE:#x}, got {length}"
        )
    return HEADER.pack(message_type, length)


def parse_header(data: bytes) -> FrameHeader:
    """Unpack an 8-byte frame header."""
    if len(data) != HEADER_SIZE:
        raise ValueError(f"Frame header must be {HEADER_SIZE} bytes, got {len(data)}")
    message_type, length = HEADER.unpack(data)
    return FrameHeader(message_type=coerce_message_type(message_type), length=length)


def build_frame(message_type: int, payload: bytes = b"") -> bytes:
    """Build a complete frame (header followed by payload) in memory."""
    return build_header(message_type, len(payload)) + bytes(payload)


def read_full(stream: BinaryIO, size: int) -> bytes:
    """Read ``size`` bytes from ``stream``, looping over short reads.

    Returns fewer than ``size`` bytes only if the stream reaches end-of-stream.
    """
    chunks: list[bytes] = []
    received = 0
    while received < size:
        chunk = stream.read(size - received)
        if not chunk:
            break
        chunks.append(chunk)
        received += len(chunk)
    return b"".join(chunks)


class LimitedReader(io.RawIOBase):
    """Reader over at most ``length`` bytes of an underlying binary source.

    Once the budget is spent every read returns ``b""`` without touching the
    source, so bytes belonging to the next frame stay where they are. Closing
    this reader does not close the source.

    Usage::

        reader = LimitedReader(stream, 5)
        data = reader.read()   # at most 5 bytes
        reader.remaining       # 0
    """

    def __init__(
        self,
        source: BinaryIO,
        length: int,
        on_exhausted: Callable[[], None] | None = None,
    ) -> None:
        super().__init__()
        if length < 0:
            raise ValueError(f"Length must be non-negative, got {length}")
        self._source = source
        self._length = length
        self._remaining = length
        self._on_exhausted = on_exhausted

    @property
    def length(self) -> int:
        return self._length

    @property
    def remaining(self) -> int:
        return self._remaining

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int | None:
        if self._remaining <= 0:
            return 0

        view = memoryview(buffer).cast("B")
        size = min(len(view), self._remaining)
        if size == 0:
            return 0

        data = self._source.read(size)
        if data is None:
            # Non-blocking source with nothing available yet
            return None
        if not data:
            raise TruncatedPayloadError(self._remaining)

        count = len(data)
        view[:count] = data
        self._remaining -= count
        if self._remaining == 0 and self._on_exhausted is not None:
            self._on_exhausted()
        return count

    def drain(self) -> int:
        """Discard the rest of the payload.

        Returns:
            The number of bytes discarded.

        Raises:
            BlockingIOError: If a non-blocking source has no data available.
        """
        discarded = 0
        while self._remaining > 0:
            chunk = self.read(min(self._remaining, DRAIN_CHUNK_SIZE))
            if chunk is None:
                raise BlockingIOError(
                    errno.EAGAIN, "Source would block while draining a payload"
                )
            discarded += len(chunk)
        return discarded

    def __repr__(self) -> str:
        return f"LimitedReader(length={self._length}, remaining={self._remaining})"
