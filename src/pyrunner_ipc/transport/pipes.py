"""Helpers for building channels over OS pipes and file descriptors."""

from __future__ import annotations

import logging
import os

from .channel import MessageChannel

logger = logging.getLogger(__name__)


def open_channel(read_fd: int, write_fd: int) -> MessageChannel:
    """Wrap two file descriptors in a channel that owns them.

    The descriptors are opened as unbuffered binary files, so every frame is
    handed to the OS as soon as ``send_message`` returns. Passing the same
    descriptor twice (one end of a socketpair, say) opens a single duplex
    file that backs both halves and is closed once.
    """
    if read_fd == write_fd:
        stream = os.fdopen(read_fd, "r+b", buffering=0)
        logger.debug("Opened duplex channel on fd=%d", read_fd)
        return MessageChannel(stream, stream)

    reader = os.fdopen(read_fd, "rb", buffering=0)
    try:
        writer = os.fdopen(write_fd, "wb", buffering=0)
    except Exception:
        reader.close()
        raise
    logger.debug("Opened channel on fds read=%d write=%d", read_fd, write_fd)
    return MessageChannel(reader, writer)


def channel_pair() -> tuple[MessageChannel, MessageChannel]:
    """Create two channels connected back to back over a pair of pipes.

    Returns:
        ``(supervisor, worker)``: whatever one side sends, the other receives.
    """
    worker_read, supervisor_write = os.pipe()
    supervisor_read, worker_write = os.pipe()
    supervisor = open_channel(supervisor_read, supervisor_write)
    worker = open_channel(worker_read, worker_write)
    return supervisor, worker
