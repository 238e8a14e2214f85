"""Worker-side message loop.

The worker receives CONFIGURE and SHUTDOWN messages from the supervisor,
answers each CONFIGURE with a CONFIGURE_RESULT, and relays its own log
records back as LOG messages.
"""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
import threading
from typing import Any, Callable

from .errors import IncompleteHeaderError
from .protocol.messages import (
    ConfigureResult,
    MessageType,
    decode_configure,
    encode_log_record,
    message_type_name,
)
from .transport.channel import MessageChannel, MessageSender
from .transport.pipes import open_channel

logger = logging.getLogger(__name__)

# Records from the channel itself are not relayed; sending them would recurse
TRANSPORT_LOGGER = f"{__package__}.transport"

ConfigureCallback = Callable[[dict[str, Any]], Any]


class ChannelLogHandler(logging.Handler):
    """Logging handler that forwards records to the supervisor as LOG messages.

    Sends are serialized with ``lock``, which must be the same lock used by
    every other writer of the channel's send half.
    """

    def __init__(
        self,
        sender: MessageSender,
        lock: threading.Lock | None = None,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self._sender = sender
        self._send_lock = lock or threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == TRANSPORT_LOGGER or record.name.startswith(TRANSPORT_LOGGER + "."):
            return
        try:
            payload = encode_log_record(record)
            with self._send_lock:
                self._sender.send_message(MessageType.LOG, payload)
        except Exception:
            self.handleError(record)


class Runner:
    """Drives the worker side of a channel until shutdown.

    Usage::

        runner = Runner(channel, apply_config)
        logging.getLogger().addHandler(runner.log_handler())
        runner.run()
    """

    def __init__(self, channel: MessageChannel, configure: ConfigureCallback) -> None:
        self._channel = channel
        self._configure = configure
        self.send_lock = threading.Lock()

    def log_handler(self, level: int = logging.NOTSET) -> ChannelLogHandler:
        """Build a handler that shares this runner's send lock."""
        return ChannelLogHandler(self._channel.sender, self.send_lock, level)

    def run(self) -> None:
        """Process messages until SHUTDOWN or until the supervisor hangs up.

        Raises:
            IncompleteHeaderError: If the stream ends in the middle of a header.
            OSError: If the channel fails.
        """
        logger.info("Worker ready")
        while True:
            try:
                msg_type, payload = self._channel.receive_message()
            except IncompleteHeaderError as e:
                if e.received == 0:
                    logger.info("Supervisor closed the channel")
                    return
                raise

            if msg_type == MessageType.CONFIGURE:
                self._handle_configure(payload.read())
            elif msg_type == MessageType.SHUTDOWN:
                payload.drain()
                logger.info("Shutdown requested")
                return
            else:
                discarded = payload.drain()
                logger.warning(
                    "Ignoring message type=%s size=%d",
                    message_type_name(msg_type),
                    discarded,
                )

    def _handle_configure(self, data: bytes) -> None:
        error = None
        try:
            self._configure(decode_configure(data))
        except Exception as e:
            logger.exception("Configuration failed")
            error = str(e) or type(e).__name__

        result = ConfigureResult(error=error)
        with self.send_lock:
            self._channel.send_message(MessageType.CONFIGURE_RESULT, result.to_bytes())


def load_target(target: str) -> ConfigureCallback:
    """Resolve a ``module:attribute`` reference to a callable."""
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise ValueError(f"Target must look like 'module:function', got {target!r}")

    obj: Any = importlib.import_module(module_name)
    for attr in attr_path.split("."):
        obj = getattr(obj, attr)
    if not callable(obj):
        raise ValueError(f"Target {target!r} is not callable")
    return obj


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pyrunner-worker",
        description="Run a worker that takes its configuration over a framed pipe.",
    )
    parser.add_argument("target", help="configure callable, as module:function")
    parser.add_argument("--read-fd", type=int, default=0, help="fd to receive on (default: stdin)")
    parser.add_argument("--write-fd", type=int, default=1, help="fd to send on (default: stdout)")
    parser.add_argument("--log-level", default="INFO", help="minimum level to log and relay")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the worker loop over the given file descriptors."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), stream=sys.stderr)

    if args.write_fd == 1:
        # Stray prints would corrupt the frame stream
        sys.stdout = sys.stderr

    configure = load_target(args.target)
    channel = open_channel(args.read_fd, args.write_fd)
    runner = Runner(channel, configure)
    handler = runner.log_handler()
    root = logging.getLogger()
    root.addHandler(handler)
    try:
        runner.run()
    finally:
        root.removeHandler(handler)
        channel.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
