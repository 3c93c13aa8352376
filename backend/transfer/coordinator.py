"""
Transfer Coordinator — turns three selections into one download request.

    destination peer  ->  source peer  ->  file

Each forward step checks its preconditions and raises PreconditionError
instead of defaulting. Stepping back clears the state owned by the
stage being left. A successful request publishes on the RefreshBus so
inventory views re-fetch.
"""

import logging

from directory.models import PeerId
from discovery.refresh import RefreshBus
from errors import PeerDeskError, PreconditionError, ServiceError
from transfer.models import TransferSelection, TransferStage

logger = logging.getLogger(__name__)


def _same_peer(a: PeerId | None, b: PeerId | None) -> bool:
    return a is not None and b is not None and str(a) == str(b)


class TransferCoordinator:
    """Staged selection workflow for peer-to-peer downloads."""

    def __init__(self, directory, refresh_bus: RefreshBus) -> None:
        self._directory = directory
        self._refresh_bus = refresh_bus
        self._state = TransferSelection()
        self._generation = 0

    @property
    def state(self) -> TransferSelection:
        return self._state.model_copy(deep=True)

    @property
    def stage(self) -> TransferStage:
        return self._state.stage

    def _require_stage(self, stage: TransferStage, action: str) -> None:
        if self._state.stage != stage:
            raise PreconditionError(
                f"Cannot {action} during the '{self._state.stage.value}' stage"
            )
        if self._state.busy:
            raise PreconditionError("A request for this transfer is already in flight")

    def _fail(self, error: PeerDeskError) -> PeerDeskError:
        self._state.last_error = error.message
        return error

    # --- Selections ---

    def select_destination(self, peer_id: PeerId) -> TransferSelection:
        """Choose the peer the file is downloaded TO."""
        self._require_stage(TransferStage.DESTINATION, "choose a destination")
        if peer_id is None or peer_id == "":
            raise self._fail(PreconditionError("Please select a destination peer first"))
        self._state.destination_peer = peer_id
        self._state.last_error = None
        self._state.last_result = None
        return self.state

    def select_source(self, peer_id: PeerId) -> TransferSelection:
        """Choose the peer the file is downloaded FROM."""
        self._require_stage(TransferStage.SOURCE, "choose a source")
        if peer_id is None or peer_id == "":
            raise self._fail(PreconditionError("Please select a source peer first"))
        if _same_peer(peer_id, self._state.destination_peer):
            raise self._fail(
                PreconditionError("Source peer must differ from the destination peer")
            )
        self._state.source_peer = peer_id
        self._state.last_error = None
        return self.state

    # --- Transitions ---

    async def advance(self) -> TransferSelection:
        """Move to the next stage if the current stage's selection is complete."""
        if self._state.busy:
            raise PreconditionError("A request for this transfer is already in flight")

        if self._state.stage == TransferStage.DESTINATION:
            if self._state.destination_peer is None:
                raise self._fail(PreconditionError("Please select a destination peer first"))
            self._state.stage = TransferStage.SOURCE
            self._state.source_peer = None
            self._state.selected_file = None
            self._state.candidate_files = []
            self._state.last_error = None
            return self.state

        if self._state.stage == TransferStage.SOURCE:
            if self._state.source_peer is None:
                raise self._fail(PreconditionError("Please select a source peer first"))
            if _same_peer(self._state.source_peer, self._state.destination_peer):
                raise self._fail(
                    PreconditionError("Source peer must differ from the destination peer")
                )
            await self._load_candidates()
            return self.state

        raise PreconditionError("Select a file to finish the transfer")

    async def _load_candidates(self) -> None:
        self._generation += 1
        generation = self._generation
        source = self._state.source_peer

        self._state.busy = True
        try:
            files = await self._directory.list_peer_files(source)
        except PeerDeskError as e:
            if generation == self._generation:
                self._state.busy = False
                logger.warning(f"Failed to load files from peer {source}: {e.message}")
                raise self._fail(e)
            raise
        if generation != self._generation:
            logger.debug(f"Discarding stale file list for peer {source}")
            return

        self._state.busy = False
        self._state.candidate_files = files
        self._state.selected_file = None
        self._state.stage = TransferStage.FILE
        self._state.last_error = None
        logger.info(f"Loaded {len(files)} candidate file(s) from peer {source}")

    async def select_file(self, filename: str) -> str:
        """
        Request the download of `filename` and return the backend acknowledgement.

        On failure the workflow stays in the file stage with its selections,
        unless the backend reports the source peer as gone.
        """
        self._require_stage(TransferStage.FILE, "choose a file")
        destination = self._state.destination_peer
        source = self._state.source_peer
        if destination is None or source is None or not filename:
            raise self._fail(PreconditionError("Missing required information for download"))
        if filename not in {f.filename for f in self._state.candidate_files}:
            raise self._fail(
                PreconditionError(f"'{filename}' is not available from peer {source}")
            )

        self._generation += 1
        generation = self._generation
        self._state.selected_file = filename
        self._state.busy = True
        self._state.last_error = None
        self._state.last_result = None

        try:
            ack = await self._directory.request_download(destination, source, filename)
        except PeerDeskError as e:
            if generation == self._generation:
                self._state.busy = False
                if isinstance(e, ServiceError) and e.upstream_status == 404:
                    logger.warning(f"Source peer {source} vanished; returning to source stage")
                    self._state.stage = TransferStage.SOURCE
                    self._state.source_peer = None
                    self._state.selected_file = None
                    self._state.candidate_files = []
                self._state.last_error = f"Download failed: {e.message}"
            raise

        if generation == self._generation:
            self._state.busy = False
            self._state.last_result = ack or f"Successfully downloaded {filename}"
        logger.info(f"Transfer of '{filename}' from peer {source} to peer {destination} accepted")
        self._refresh_bus.publish()
        return ack

    def back(self) -> TransferSelection:
        """Return to the previous stage, clearing what the left stage owned."""
        self._generation += 1
        self._state.busy = False
        if self._state.stage == TransferStage.FILE:
            self._state.stage = TransferStage.SOURCE
            self._state.selected_file = None
            self._state.candidate_files = []
        elif self._state.stage == TransferStage.SOURCE:
            self._state.stage = TransferStage.DESTINATION
            self._state.source_peer = None
        self._state.last_error = None
        self._state.last_result = None
        return self.state

    def reset(self) -> TransferSelection:
        self._generation += 1
        self._state = TransferSelection()
        return self.state
