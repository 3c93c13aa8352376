"""Upload workflow: push a file into a peer's share, then signal a refresh."""

import logging
from typing import BinaryIO

from directory.models import PeerId
from discovery.refresh import RefreshBus
from errors import ValidationError
from transfer.models import UploadResult

logger = logging.getLogger(__name__)


class UploadWorkflow:
    def __init__(self, directory, refresh_bus: RefreshBus) -> None:
        self._directory = directory
        self._refresh_bus = refresh_bus

    async def upload(
        self, peer_id: PeerId | None, filename: str | None, content: bytes | BinaryIO | None
    ) -> UploadResult:
        if peer_id in (None, "") or not filename or content is None:
            raise ValidationError("Please select both a file and a peer")

        ack = await self._directory.upload_file(peer_id, filename, content)
        logger.debug(f"Upload of '{filename}' accepted; signalling refresh")
        self._refresh_bus.publish()
        return UploadResult(peer_id=peer_id, filename=filename, acknowledgement=ack)
