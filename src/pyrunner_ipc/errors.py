"""Exception types raised by the channel and its collaborators."""

from __future__ import annotations


class ProtocolStateError(RuntimeError):
    """A new message was requested before the previous payload was drained."""


class IncompleteHeaderError(EOFError):
    """The stream ended before a full frame header could be read."""

    def __init__(self, received: int, expected: int) -> None:
        super().__init__(
            f"Stream ended after {received} of {expected} header bytes"
        )
        self.received = received
        self.expected = expected


class TruncatedPayloadError(EOFError):
    """The stream ended while payload bytes were still owed."""

    def __init__(self, remaining: int) -> None:
        super().__init__(f"Stream ended with {remaining} payload bytes unread")
        self.remaining = remaining


class PayloadError(ValueError):
    """A payload could not be decoded."""


class ChannelCloseError(OSError):
    """One or both underlying streams failed to close."""

    def __init__(self, errors: list[tuple[str, BaseException]]) -> None:
        details = "; ".join(f"{side}: {err}" for side, err in errors)
        super().__init__(f"Error closing channel ({details})")
        self.errors = errors


class ConfigureError(RuntimeError):
    """The worker reported that it could not apply a configuration."""
