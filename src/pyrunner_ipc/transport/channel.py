"""Framed duplex channel between a supervisor and a worker process.

The channel is split into a receive half and a send half. The halves share
no state, so one thread may own receiving while another owns sending. Neither
half does any locking: each must be driven by a single caller at a time.

Usage::

    channel = MessageChannel(reader_stream, writer_stream)
    channel.send_message(MessageType.CONFIGURE, payload)
    msg_type, payload = channel.receive_message()
    data = payload.read()
    channel.close()
"""

from __future__ import annotations

import errno
import logging
from enum import Enum
from typing import BinaryIO

from ..errors import ChannelCloseError, IncompleteHeaderError, ProtocolStateError
from ..protocol.framing import (
    HEADER_SIZE,
    LimitedReader,
    build_header,
    parse_header,
    read_full,
)
from ..protocol.messages import MessageType, message_type_name

logger = logging.getLogger(__name__)


class ReceiveState(Enum):
    """Receive-direction state.

    ``PAYLOAD_PENDING`` holds until the current payload reader is exhausted;
    the receiver's ``pending`` property gives the bytes still unread.
    """

    IDLE = "idle"
    PAYLOAD_PENDING = "payload_pending"


class MessageReceiver:
    """Receive half: reads frame headers and hands out bounded payload readers."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._state = ReceiveState.IDLE
        self._cursor: LimitedReader | None = None

    @property
    def stream(self) -> BinaryIO:
        return self._stream

    @property
    def pending(self) -> int:
        """Bytes of the current payload that have not been read yet."""
        if self._state is ReceiveState.PAYLOAD_PENDING:
            return self._cursor.remaining
        return 0

    @property
    def state(self) -> ReceiveState:
        return self._state

    def _payload_drained(self) -> None:
        self._state = ReceiveState.IDLE
        self._cursor = None

    def receive_message(self) -> tuple[MessageType | int, LimitedReader]:
        """Block until a frame header arrives and return its type and payload.

        The payload itself is not read; the caller must consume the returned
        reader completely (or call its ``drain()``) before asking for the
        next message. This is not thread-safe.

        Raises:
            ProtocolStateError: If the previous payload still has unread bytes.
                No I/O is performed in that case.
            IncompleteHeaderError: If the stream ends before 8 header bytes.
            OSError: If the underlying read fails.
        """
        if self._state is ReceiveState.PAYLOAD_PENDING:
            raise ProtocolStateError(
                f"Previous payload not fully drained ({self.pending} bytes unread)"
            )

        data = read_full(self._stream, HEADER_SIZE)
        if len(data) < HEADER_SIZE:
            raise IncompleteHeaderError(len(data), HEADER_SIZE)

        header = parse_header(data)
        logger.debug(
            "Received message type=%s size=%d",
            message_type_name(header.message_type),
            header.length,
        )

        payload = LimitedReader(self._stream, header.length, self._payload_drained)
        if header.length > 0:
            self._state = ReceiveState.PAYLOAD_PENDING
            self._cursor = payload
        return header.message_type, payload

    def close(self) -> None:
        self._stream.close()


class MessageSender:
    """Send half: writes one complete frame per call."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._corrupted = False

    @property
    def stream(self) -> BinaryIO:
        return self._stream

    @property
    def corrupted(self) -> bool:
        """True once a send has failed; the peer may have a partial frame."""
        return self._corrupted

    def send_message(self, message_type: int, payload: bytes | None = None) -> None:
        """Frame and send a message. This is not thread-safe.

        Args:
            message_type: Any unsigned 32-bit type tag.
            payload: Message body; ``None`` or empty sends a header only.

        Raises:
            ValueError: If the type or payload length does not fit the header.
                Nothing is written in that case.
            OSError: If the underlying write fails. Bytes already written are
                not rolled back and the channel should be closed.
        """
        data = bytes(payload) if payload else b""
        header = build_header(message_type, len(data))

        try:
            self._write_all(header)
            if data:
                self._write_all(data)
            flush = getattr(self._stream, "flush", None)
            if flush is not None:
                flush()
        except Exception:
            self._corrupted = True
            raise

        logger.debug(
            "Sent message type=%s size=%d", message_type_name(message_type), len(data)
        )

    def _write_all(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = self._stream.write(view)
            if written is None:
                raise BlockingIOError(
                    errno.EAGAIN, "Stream would block in the middle of a frame"
                )
            view = view[written:]

    def close(self) -> None:
        self._stream.close()


class MessageChannel:
    """Owns a receive stream and a send stream and frames messages on both.

    The two streams may be distinct pipe ends or the same duplex stream.
    Closing the channel closes both and is terminal.
    """

    def __init__(self, reader: BinaryIO, writer: BinaryIO) -> None:
        self.receiver = MessageReceiver(reader)
        self.sender = MessageSender(writer)

    @property
    def closed(self) -> bool:
        return bool(
            getattr(self.receiver.stream, "closed", False)
            and getattr(self.sender.stream, "closed", False)
        )

    def receive_message(self) -> tuple[MessageType | int, LimitedReader]:
        return self.receiver.receive_message()

    def send_message(self, message_type: int, payload: bytes | None = None) -> None:
        self.sender.send_message(message_type, payload)

    def close(self) -> None:
        """Close both streams.

        Both closes are always attempted.

        Raises:
            ChannelCloseError: If either stream failed to close.
        """
        errors: list[tuple[str, BaseException]] = []
        for side, half in (("receive", self.receiver), ("send", self.sender)):
            try:
                half.close()
            except Exception as e:
                logger.warning("Error closing %s stream: %s", side, e)
                errors.append((side, e))

        if errors:
            raise ChannelCloseError(errors) from errors[0][1]
        logger.debug("Channel closed")

    def __enter__(self) -> MessageChannel:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
