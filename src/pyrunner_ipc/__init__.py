"""Length-prefixed message framing between a supervisor and a worker process."""

from .errors import (
    ChannelCloseError,
    ConfigureError,
    IncompleteHeaderError,
    PayloadError,
    ProtocolStateError,
    TruncatedPayloadError,
)
from .protocol import ConfigureResult, LimitedReader, MessageType
from .transport import MessageChannel, MessageReceiver, MessageSender, ReceiveState
from .transport.pipes import channel_pair, open_channel

__version__ = "0.1.0"
