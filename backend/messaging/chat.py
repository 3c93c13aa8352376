"""Chat workflow on top of the messaging channel."""

import logging
from collections import deque

from config import CHAT_HISTORY_LIMIT
from directory.models import PeerId
from errors import PreconditionError, ValidationError
from messaging.channel import MessagingChannel
from messaging.models import (
    BroadcastEnvelope,
    ChatDirection,
    ChatMessage,
    ConnectionState,
    DirectEnvelope,
)

logger = logging.getLogger(__name__)

EVERYONE = "all"


class ChatSession:
    """Keeps the local chat log and translates user sends into envelopes."""

    def __init__(self, channel: MessagingChannel, history_limit: int = CHAT_HISTORY_LIMIT) -> None:
        self._channel = channel
        self._messages: deque[ChatMessage] = deque(maxlen=history_limit)
        self._listeners: list = []  # async fn(message: ChatMessage)
        self._channel.add_handler(self._on_envelope)

    @property
    def local_peer(self) -> str | None:
        return self._channel.peer_id

    @property
    def state(self) -> ConnectionState:
        return self._channel.state

    def on_message(self, callback) -> None:
        """Register callback: async fn(message: ChatMessage) for sent and received lines."""
        self._listeners.append(callback)

    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    async def start(self, peer_id: PeerId) -> ConnectionState:
        """Chat as `peer_id`; switching identity replaces the old connection."""
        return await self._channel.connect(peer_id)

    async def stop(self) -> None:
        await self._channel.close()

    async def send(self, text: str, recipients: list[PeerId]) -> list[ChatMessage]:
        """
        Send `text` to every recipient, or broadcast when they include "all".

        Returns the log entries recorded for the send.
        """
        if not text or not text.strip():
            raise ValidationError("Message text is empty")
        if not recipients:
            raise ValidationError("Please select at least one peer to receive the message")
        sender = self.local_peer
        if sender is None:
            raise PreconditionError("Please select a peer to send from")

        sent: list[ChatMessage] = []
        if EVERYONE in [str(r) for r in recipients]:
            await self._channel.send_broadcast(text)
            sent.append(await self._record_sent(sender, EVERYONE, text))
        else:
            for recipient in recipients:
                # A failure here leaves earlier recipients logged and emitted
                await self._channel.send_direct(recipient, text)
                sent.append(await self._record_sent(sender, str(recipient), text))
        return sent

    def clear(self) -> None:
        self._messages.clear()

    async def _record_sent(self, sender: str, recipient: str, text: str) -> ChatMessage:
        message = self._record(ChatDirection.SENT, sender, recipient, text)
        await self._emit(message)
        return message

    def _record(self, direction: ChatDirection, sender: str, recipient: str, text: str) -> ChatMessage:
        message = ChatMessage(direction=direction, sender=sender, recipient=recipient, content=text)
        self._messages.append(message)
        return message

    async def _on_envelope(self, envelope: BroadcastEnvelope | DirectEnvelope) -> None:
        sender = envelope.sender or "unknown"
        if isinstance(envelope, DirectEnvelope):
            if self.local_peer is not None and envelope.target != self.local_peer:
                logger.debug(f"Ignoring direct message addressed to peer {envelope.target}")
                return
            recipient = envelope.target
        elif isinstance(envelope, BroadcastEnvelope):
            recipient = EVERYONE
        else:
            raise TypeError(f"Unhandled envelope type: {type(envelope).__name__}")

        message = self._record(ChatDirection.RECEIVED, sender, recipient, envelope.message)
        await self._emit(message)

    async def _emit(self, message: ChatMessage) -> None:
        for cb in self._listeners:
            try:
                await cb(message)
            except Exception as e:
                logger.error(f"Chat listener error: {e}")
