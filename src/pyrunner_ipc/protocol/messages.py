"""Message type constants and payload codecs.

Payloads are UTF-8 JSON documents. The framing layer never looks inside
them; these helpers are for the supervisor and worker that sit on either
side of the channel.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from ..errors import PayloadError

MAX_MESSAGE_TYPE = 0xFFFFFFFF


class MessageType(IntEnum):
    """Reserved message type tags."""

    NONE = 0
    CONFIGURE = 1
    CONFIGURE_RESULT = 2
    SHUTDOWN = 3
    LOG = 4


def coerce_message_type(value: int) -> MessageType | int:
    """Return the ``MessageType`` for ``value``, or ``value`` itself if unreserved.

    Raises:
        ValueError: If ``value`` does not fit in an unsigned 32-bit field.
    """
    value = int(value)
    if not 0 <= value <= MAX_MESSAGE_TYPE:
        raise ValueError(
            f"Message type must be 0-{MAX_MESSAGE_TYPE:#x}, got {value}"
        )
    try:
        return MessageType(value)
    except ValueError:
        return value


def message_type_name(value: int) -> str:
    """Human-readable label for a message type, e.g. ``LOG(4)`` or ``17``."""
    if isinstance(value, MessageType):
        return f"{value.name}({int(value)})"
    return str(int(value))


def _load_json(data: bytes, what: str) -> Any:
    try:
        return json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PayloadError(f"Invalid {what} payload: {e}") from e


def encode_configure(config: dict[str, Any]) -> bytes:
    """Serialize a configuration document for a CONFIGURE message."""
    return json.dumps(config, separators=(",", ":")).encode("utf-8")


def decode_configure(data: bytes) -> dict[str, Any]:
    """Parse a CONFIGURE payload back into a configuration document."""
    config = _load_json(data, "configure")
    if not isinstance(config, dict):
        raise PayloadError(
            f"Configure payload must be a JSON object, got {type(config).__name__}"
        )
    return config


@dataclass
class ConfigureResult:
    """Outcome of a CONFIGURE request, as reported by the worker."""

    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_bytes(self) -> bytes:
        return json.dumps({"error": self.error}).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> ConfigureResult:
        doc = _load_json(data, "configure result")
        if not isinstance(doc, dict):
            raise PayloadError("Configure result payload must be a JSON object")
        error = doc.get("error")
        if error is not None and not isinstance(error, str):
            raise PayloadError(
                f"Configure result error must be a string or null, got {error!r}"
            )
        return cls(error=error)


# Attributes copied from a LogRecord into a LOG payload
_LOG_FIELDS = ("name", "levelno", "levelname", "created", "pathname", "lineno", "funcName")


def encode_log_record(record: logging.LogRecord) -> bytes:
    """Serialize a log record for a LOG message.

    The message is formatted with its arguments before sending, so the
    receiving side never needs the original ``args``.
    """
    doc: dict[str, Any] = {name: getattr(record, name, None) for name in _LOG_FIELDS}
    doc["msg"] = record.getMessage()
    if record.exc_info and not record.exc_text:
        record.exc_text = logging.Formatter().formatException(record.exc_info)
    if record.exc_text:
        doc["exc_text"] = record.exc_text
    return json.dumps(doc).encode("utf-8")


def decode_log_record(data: bytes) -> logging.LogRecord:
    """Rebuild a ``logging.LogRecord`` from a LOG payload."""
    doc = _load_json(data, "log")
    if not isinstance(doc, dict) or "msg" not in doc:
        raise PayloadError("Log payload must be a JSON object with a 'msg' field")

    levelno = doc.get("levelno")
    if not isinstance(levelno, int):
        levelno = logging.getLevelName(doc.get("levelname", "INFO"))
        if not isinstance(levelno, int):
            levelno = logging.INFO

    attrs = {name: doc[name] for name in _LOG_FIELDS if doc.get(name) is not None}
    attrs.update(
        msg=str(doc["msg"]),
        args=None,
        levelno=levelno,
        levelname=logging.getLevelName(levelno),
    )
    if doc.get("exc_text"):
        attrs["exc_text"] = doc["exc_text"]
    return logging.makeLogRecord(attrs)
