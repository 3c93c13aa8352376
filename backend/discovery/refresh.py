"""Payload-free "inventory may have changed" signal."""

import logging
from typing import Callable

logger = logging.getLogger(__name__)

Subscriber = Callable[[], object]


class RefreshBus:
    """
    Tells views that depend on the remote inventory to re-fetch.

    Subscribers are called synchronously in registration order. They must
    be idempotent: a subscriber only triggers its own re-fetch.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception as e:
                logger.error(f"Refresh subscriber error: {e}", exc_info=True)

    def __len__(self) -> int:
        return len(self._subscribers)
