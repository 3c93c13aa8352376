"""
Messaging Channel — peer-identified realtime connection to the backend.

    disconnected --connect()--> connecting --open--> connected
         ^                          |                    |
         +------ failure -----------+---- error/close ---+

A failed open or a dropped connection schedules a reconnect after a
fixed delay. After `max_attempts` consecutive failed opens the channel
stays disconnected and `exhausted` is set until connect() is called
again. Every connect() bumps a generation counter; sockets and timers
from an older generation never touch the current state.
"""

import asyncio
import functools
import inspect
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode

import websockets

from config import MAX_RECONNECT_ATTEMPTS, RECONNECT_DELAY, REQUEST_TIMEOUT, WS_URL
from directory.models import PeerId
from errors import EnvelopeError, NetworkError, ValidationError
from messaging.models import (
    BroadcastEnvelope,
    ConnectionState,
    DirectEnvelope,
    decode_envelope,
    encode_envelope,
)

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class MessagingChannel:
    """One duplex channel per local peer identity, with bounded auto-reconnect."""

    def __init__(
        self,
        ws_url: str = WS_URL,
        reconnect_delay: float = RECONNECT_DELAY,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        connector: Connector | None = None,
    ) -> None:
        self._ws_url = ws_url
        self._reconnect_delay = reconnect_delay
        self._max_attempts = max_attempts
        self._connector = connector or functools.partial(
            websockets.connect, open_timeout=REQUEST_TIMEOUT
        )

        self._state = ConnectionState.DISCONNECTED
        self._peer_id: str | None = None
        self._socket = None
        self._attempts = 0
        self._exhausted = False
        self._generation = 0
        self._receive_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._lifecycle_lock = asyncio.Lock()

        self._handlers: set = set()
        self._state_callbacks: list = []  # fn(state, exhausted), sync or async

    # --- Introspection ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def peer_id(self) -> str | None:
        return self._peer_id

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def exhausted(self) -> bool:
        """True once every reconnect attempt has failed; cleared by connect()."""
        return self._exhausted

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def url_for(self, peer_id: str) -> str:
        return f"{self._ws_url}?{urlencode({'peer_id': peer_id})}"

    # --- Handlers ---

    def add_handler(self, handler) -> None:
        """Register fn(envelope), sync or async, for every inbound message."""
        self._handlers.add(handler)

    def remove_handler(self, handler) -> None:
        self._handlers.discard(handler)

    def on_state_change(self, callback) -> None:
        self._state_callbacks.append(callback)

    def _notify(self) -> None:
        for cb in list(self._state_callbacks):
            try:
                result = cb(self._state, self._exhausted)
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)
            except Exception as e:
                logger.error(f"State callback error: {e}")

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            self._state = state
            self._notify()

    # --- Lifecycle ---

    async def connect(self, peer_id: PeerId) -> ConnectionState:
        """
        (Re)connect as `peer_id`.

        Any existing socket, receive loop and pending reconnect are torn
        down first, and the attempt counter starts again from zero.
        Overlapping connect() and close() calls run one at a time.
        """
        if peer_id is None or str(peer_id) == "":
            raise ValidationError("A peer id is required to open the chat channel")

        async with self._lifecycle_lock:
            await self._teardown()
            self._peer_id = str(peer_id)
            self._attempts = 0
            self._exhausted = False
            logger.info(f"Opening chat channel as peer {self._peer_id}")
            await self._open(self._generation)
            return self._state

    async def close(self) -> None:
        async with self._lifecycle_lock:
            await self._teardown()
            self._peer_id = None
            self._attempts = 0
            self._exhausted = False
        logger.info("Chat channel closed")

    async def _teardown(self) -> None:
        self._generation += 1

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

        task, self._receive_task = self._receive_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        socket, self._socket = self._socket, None
        if socket is not None:
            await self._close_quietly(socket)

        self._set_state(ConnectionState.DISCONNECTED)

    @staticmethod
    async def _close_quietly(socket) -> None:
        try:
            await socket.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing socket: {e}")

    async def _open(self, generation: int) -> None:
        self._set_state(ConnectionState.CONNECTING)
        try:
            socket = await self._connector(self.url_for(self._peer_id))
        except Exception as e:
            if generation != self._generation:
                return
            self._attempts += 1
            logger.error(f"Error creating WebSocket connection: {e}")
            self._set_state(ConnectionState.DISCONNECTED)
            self._schedule_reconnect(generation)
            return

        if generation != self._generation:
            # Superseded by a newer connect() while the handshake was in flight
            await self._close_quietly(socket)
            return

        self._socket = socket
        self._attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"WebSocket connected as peer {self._peer_id}")
        self._receive_task = asyncio.create_task(self._receive_loop(socket, generation))

    def _schedule_reconnect(self, generation: int) -> None:
        if generation != self._generation:
            return
        if self._attempts >= self._max_attempts:
            self._exhausted = True
            logger.error(
                f"Max reconnection attempts reached ({self._max_attempts}); "
                f"chat channel for peer {self._peer_id} stays disconnected"
            )
            self._notify()
            return
        if self.reconnect_pending:
            return
        logger.info(f"Attempting to reconnect ({self._attempts + 1}/{self._max_attempts})...")
        self._reconnect_task = asyncio.create_task(self._reconnect_after_delay(generation))

    async def _reconnect_after_delay(self, generation: int) -> None:
        await asyncio.sleep(self._reconnect_delay)
        if generation != self._generation:
            return
        self._reconnect_task = None
        await self._open(generation)

    async def _receive_loop(self, socket, generation: int) -> None:
        try:
            async for raw in socket:
                await self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation == self._generation:
                logger.error(f"WebSocket error: {e}")

        if generation != self._generation:
            return
        logger.info("WebSocket disconnected")
        self._socket = None
        self._receive_task = None
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect(generation)

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            envelope = decode_envelope(raw)
        except EnvelopeError as e:
            logger.warning(f"Dropping inbound frame: {e.message}")
            return

        for handler in list(self._handlers):
            try:
                result = handler(envelope)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Message handler error: {e}", exc_info=True)

    # --- Outbound ---

    async def send_broadcast(self, text: str) -> None:
        await self._send(BroadcastEnvelope(message=text))

    async def send_direct(self, target_peer_id: PeerId, text: str) -> None:
        if target_peer_id is None or str(target_peer_id) == "":
            raise ValidationError("A target peer id is required for a direct message")
        await self._send(DirectEnvelope(target=str(target_peer_id), message=text))

    async def _send(self, envelope: BroadcastEnvelope | DirectEnvelope) -> None:
        if self._state != ConnectionState.CONNECTED or self._socket is None:
            logger.error("WebSocket is not connected")
            raise NetworkError("Messaging channel is not connected")
        try:
            await self._socket.send(encode_envelope(envelope))
        except Exception as e:
            logger.error(f"Failed to send {envelope.type} message: {e}")
            raise NetworkError(f"Failed to send message: {e}") from e
