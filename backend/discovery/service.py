"""
Discovery Aggregator — builds the peer -> files index.

Fetches the peer list, then each peer's inventory with bounded
concurrency. A peer whose inventory cannot be fetched (error or
timeout) is recorded with no files so the rest of the index survives.
"""

import asyncio
import logging

from config import DISCOVERY_CONCURRENCY, PEER_FETCH_TIMEOUT
from directory.models import FileRecord, Peer, PeerFileIndex

logger = logging.getLogger(__name__)


class DiscoveryAggregator:
    """Owns the PeerFileIndex; replaced wholesale on every refresh."""

    def __init__(
        self,
        directory,
        concurrency: int = DISCOVERY_CONCURRENCY,
        fetch_timeout: float = PEER_FETCH_TIMEOUT,
    ) -> None:
        self._directory = directory
        self._concurrency = max(1, concurrency)
        self._fetch_timeout = fetch_timeout
        self._index = PeerFileIndex()
        self._generation = 0
        self._refresh_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._on_update: list = []  # callbacks: async fn(index)

    @property
    def index(self) -> PeerFileIndex:
        """Last committed snapshot."""
        return self._index.model_copy(deep=True)

    @property
    def refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    @property
    def pending_refreshes(self) -> int:
        return len(self._background)

    def on_update(self, callback) -> None:
        """Register callback: async fn(index: PeerFileIndex), called after each commit."""
        self._on_update.append(callback)

    async def refresh(self) -> PeerFileIndex:
        """
        Rebuild the index from the backend.

        Raises only when the peer list itself cannot be fetched. If a newer
        refresh starts before this one settles, this result is returned to
        the caller but not committed.
        """
        self._generation += 1
        generation = self._generation

        peers = await self._directory.list_peers()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch(peer: Peer) -> list[FileRecord]:
            async with semaphore:
                try:
                    return await asyncio.wait_for(
                        self._directory.list_peer_files(peer.id),
                        timeout=self._fetch_timeout,
                    )
                except asyncio.TimeoutError:
                    logger.warning(f"Timed out loading files for peer {peer.id}")
                except Exception as e:
                    logger.warning(f"Error loading files for peer {peer.id}: {e}")
                return []

        inventories = await asyncio.gather(*(fetch(peer) for peer in peers))
        index = PeerFileIndex(
            peers=peers,
            files={str(peer.id): files for peer, files in zip(peers, inventories)},
        )

        if generation != self._generation:
            logger.debug(f"Discarding stale discovery refresh #{generation}")
            return index

        self._index = index
        logger.info(
            f"Discovery refreshed: {len(peers)} peer(s), "
            f"{sum(len(files) for files in inventories)} file record(s)"
        )
        for cb in self._on_update:
            try:
                await cb(index.model_copy(deep=True))
            except Exception as e:
                logger.error(f"Index update callback error: {e}")
        return index

    def schedule_refresh(self) -> asyncio.Task:
        """RefreshBus subscriber: start a refresh in the background."""
        task = asyncio.ensure_future(self._refresh_quietly())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        self._refresh_task = task
        return task

    async def _refresh_quietly(self) -> PeerFileIndex | None:
        try:
            return await self.refresh()
        except Exception as e:
            logger.warning(f"Background discovery refresh failed: {e}")
            return None
