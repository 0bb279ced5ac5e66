"""Wire messages exchanged over the WebSocket channel.

Every frame is a JSON text object tagged by its ``type`` field:

- ``init``: first server message on a new connection, carries ``clientId``.
- ``navigate``: tells the display device to open ``url``.

These are the only frames the server produces. Frames sent by the device
are never acted on.
"""

import json
from dataclasses import dataclass
from typing import Union

from scanlink.errors import MessageError

__all__ = [
    "InitMessage",
    "NavigateMessage",
    "Message",
    "decode_message",
    "encode_message",
]


@dataclass(frozen=True)
class InitMessage:
    """Bootstrap message carrying the server-issued connection id."""

    client_id: str

    type = "init"

    def to_dict(self) -> dict:
        return {"type": self.type, "clientId": self.client_id}


@dataclass(frozen=True)
class NavigateMessage:
    """Navigation instruction pushed to the originating device."""

    url: str

    type = "navigate"

    def to_dict(self) -> dict:
        return {"type": self.type, "url": self.url}


Message = Union[InitMessage, NavigateMessage]


def encode_message(message: Message) -> str:
    """Serialize a message to a JSON text frame."""
    return json.dumps(message.to_dict())


def decode_message(raw: str) -> Message:
    """Parse a JSON text frame into a message.

    Args:
        raw: Frame payload.

    Returns:
        The decoded message.

    Raises:
        MessageError: If the frame is not JSON, is untagged, or has an
            unknown tag or missing fields.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MessageError(f"Invalid JSON frame: {e}")

    if not isinstance(data, dict):
        raise MessageError("Frame must be a JSON object")

    msg_type = data.get("type")
    try:
        if msg_type == InitMessage.type:
            return InitMessage(client_id=_require_str(data, "clientId"))
        if msg_type == NavigateMessage.type:
            return NavigateMessage(url=_require_str(data, "url"))
    except KeyError as e:
        raise MessageError(f"Missing field {e} in {msg_type} message")

    raise MessageError(f"Unknown message type: {msg_type!r}")


def _require_str(data: dict, key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise MessageError(f"Field {key!r} must be a string")
    return value
