"""Pydantic models for the realtime chat channel."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from errors import EnvelopeError


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ChatDirection(str, Enum):
    SENT = "sent"
    RECEIVED = "received"


# --- Wire envelopes ---

class BroadcastEnvelope(BaseModel):
    """Message for every connected peer."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["broadcast"] = "broadcast"
    message: str
    sender: str | None = Field(default=None, alias="from")


class DirectEnvelope(BaseModel):
    """Message for a single peer."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: Literal["direct"] = "direct"
    target: str
    message: str
    sender: str | None = Field(default=None, alias="from")


Envelope = Annotated[Union[BroadcastEnvelope, DirectEnvelope], Field(discriminator="type")]

_envelope_adapter = pydantic.TypeAdapter(Envelope)


def decode_envelope(raw: str | bytes) -> BroadcastEnvelope | DirectEnvelope:
    """Parse one inbound frame; unknown tags and malformed frames raise EnvelopeError."""
    try:
        return _envelope_adapter.validate_json(raw)
    except pydantic.ValidationError as e:
        raise EnvelopeError(f"Rejected envelope: {e.errors()[0]['msg']}") from e


def encode_envelope(envelope: BroadcastEnvelope | DirectEnvelope) -> str:
    return envelope.model_dump_json(by_alias=True, exclude_none=True)


# --- Chat log ---

class ChatMessage(BaseModel):
    """One line of the local, session-only chat log."""
    model_config = ConfigDict(populate_by_name=True)

    direction: ChatDirection
    sender: str = Field(alias="from")
    recipient: str = Field(alias="to")
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
