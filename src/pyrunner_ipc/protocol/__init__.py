"""Protocol layer: frame header codec, payload reader, and message types."""

from .framing import (
    HEADER_SIZE,
    FrameHeader,
    LimitedReader,
    build_frame,
    build_header,
    parse_header,
)
from .messages import ConfigureResult, MessageType, coerce_message_type
