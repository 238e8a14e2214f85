"""Supervisor-side session with a worker process."""

from __future__ import annotations

import logging
from typing import Any

from .errors import ConfigureError, IncompleteHeaderError, PayloadError
from .protocol.framing import LimitedReader
from .protocol.messages import (
    ConfigureResult,
    MessageType,
    decode_log_record,
    encode_configure,
    message_type_name,
)
from .transport.channel import MessageChannel

logger = logging.getLogger(__name__)

WORKER_LOGGER_PREFIX = "worker"


class WorkerSession:
    """Configures, shuts down, and relays logs from a worker over a channel.

    Spawning and restarting the worker process is left to the caller; the
    session only owns the channel.
    """

    def __init__(
        self,
        channel: MessageChannel,
        logger_prefix: str = WORKER_LOGGER_PREFIX,
    ) -> None:
        self._channel = channel
        self._logger_prefix = logger_prefix

    @property
    def channel(self) -> MessageChannel:
        return self._channel

    def configure(self, config: dict[str, Any]) -> ConfigureResult:
        """Send a configuration and wait for the worker's result.

        LOG messages that arrive before the result are relayed as usual.

        Raises:
            ConfigureError: If the worker reports an error.
            PayloadError: If the worker's result payload is malformed.
            IncompleteHeaderError: If the worker hangs up before answering.
            OSError: If the channel fails.
        """
        self._channel.send_message(MessageType.CONFIGURE, encode_configure(config))

        while True:
            msg_type, payload = self._channel.receive_message()
            if msg_type == MessageType.CONFIGURE_RESULT:
                result = ConfigureResult.from_bytes(payload.read())
                break
            self._dispatch(msg_type, payload)

        if not result.ok:
            raise ConfigureError(result.error)
        logger.info("Worker configured")
        return result

    def shutdown(self) -> None:
        """Ask the worker to exit."""
        self._channel.send_message(MessageType.SHUTDOWN)
        logger.info("Shutdown sent to worker")

    def relay_logs(self) -> int:
        """Relay worker messages until the worker closes its end.

        Returns:
            The number of log records relayed.
        """
        relayed = 0
        while True:
            try:
                msg_type, payload = self._channel.receive_message()
            except IncompleteHeaderError as e:
                if e.received == 0:
                    logger.debug("Worker closed the channel")
                    return relayed
                raise
            if self._dispatch(msg_type, payload):
                relayed += 1

    def _dispatch(self, msg_type: MessageType | int, payload: LimitedReader) -> bool:
        if msg_type == MessageType.LOG:
            data = payload.read()
            try:
                self._relay(data)
            except PayloadError as e:
                logger.warning("Dropping malformed log message: %s", e)
                return False
            return True

        discarded = payload.drain()
        logger.warning(
            "Unexpected message from worker type=%s size=%d",
            message_type_name(msg_type),
            discarded,
        )
        return False

    def _relay(self, data: bytes) -> None:
        record = decode_log_record(data)
        record.name = f"{self._logger_prefix}.{record.name}"
        target = logging.getLogger(record.name)
        if target.isEnabledFor(record.levelno):
            target.handle(record)

    def close(self) -> None:
        self._channel.close()

    def __enter__(self) -> WorkerSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
