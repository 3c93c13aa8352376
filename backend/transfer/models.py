"""Pydantic models for the transfer selection workflow."""

from enum import Enum

from pydantic import BaseModel

from directory.models import FileRecord, PeerId


class TransferStage(str, Enum):
    """Steps of the destination -> source -> file selection."""
    DESTINATION = "destination"
    SOURCE = "source"
    FILE = "file"


class TransferSelection(BaseModel):
    """Full state of the transfer workflow, exposed to the frontend."""
    stage: TransferStage = TransferStage.DESTINATION
    destination_peer: PeerId | None = None
    source_peer: PeerId | None = None
    candidate_files: list[FileRecord] = []
    selected_file: str | None = None
    busy: bool = False
    last_error: str | None = None
    last_result: str | None = None


class UploadResult(BaseModel):
    peer_id: PeerId
    filename: str
    acknowledgement: str
