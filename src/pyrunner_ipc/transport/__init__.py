"""Transport layer: the framed duplex channel and pipe helpers."""

from .channel import MessageChannel, MessageReceiver, MessageSender, ReceiveState
from .pipes import channel_pair, open_channel
