"""Pushes coordination events (inventory, index, chat) to browser tabs."""

import asyncio
import json
import logging

from fastapi import WebSocket

from directory.models import PeerFileIndex
from messaging.models import ChatMessage, ConnectionState

logger = logging.getLogger(__name__)


class BrowserEventHub:
    """
    Open browser sockets plus the callbacks that feed them.

    Every event goes out as `{"event": <name>, "data": {...}}`. A browser
    tab whose socket fails a send is forgotten; it reconnects on reload.
    """

    def __init__(self) -> None:
        self._browsers: list[WebSocket] = []
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    @property
    def connection_count(self) -> int:
        return len(self._browsers)

    @property
    def pending_count(self) -> int:
        """Event pushes scheduled from sync callbacks and not yet sent."""
        return len(self._pending)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._browsers.append(websocket)
            open_tabs = len(self._browsers)
        logger.info(f"Browser tab attached ({open_tabs} open)")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket not in self._browsers:
                return
            self._browsers.remove(websocket)
            open_tabs = len(self._browsers)
        logger.info(f"Browser tab detached ({open_tabs} open)")

    async def broadcast(self, event: str, data: dict) -> None:
        """Push one event to every attached tab."""
        frame = json.dumps({"event": event, "data": data})
        async with self._lock:
            alive: list[WebSocket] = []
            for ws in self._browsers:
                try:
                    await ws.send_text(frame)
                    alive.append(ws)
                except Exception as e:
                    logger.debug(f"Forgetting browser tab after failed '{event}' push: {e}")
            self._browsers = alive

    def _push_later(self, event: str, data: dict) -> asyncio.Task:
        task = asyncio.ensure_future(self.broadcast(event, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    # --- Adapters for the coordination layer's callbacks ---

    def inventory_changed(self) -> asyncio.Task:
        """RefreshBus subscriber."""
        return self._push_later("inventory_changed", {})

    async def index_updated(self, index: PeerFileIndex) -> None:
        await self.broadcast("index_updated", index.model_dump(mode="json"))

    async def chat_message(self, message: ChatMessage) -> None:
        await self.broadcast("chat_message", message.model_dump(mode="json", by_alias=True))

    async def chat_connection(self, state: ConnectionState, exhausted: bool) -> None:
        await self.broadcast("chat_connection", {"state": state.value, "terminal": exhausted})
