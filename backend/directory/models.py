"""Pydantic models for the backend peer directory."""

from pydantic import BaseModel, Field, field_validator

PeerId = int | str


class Peer(BaseModel):
    """A participant registered with the backend directory."""
    id: PeerId
    ip: str
    port: int


class FileRecord(BaseModel):
    """A file the backend associates with one or more peers."""
    filename: str
    filesize: int = Field(ge=0)
    hash: str

    def short_hash(self, length: int = 16) -> str:
        """Human-facing prefix of the content hash."""
        return self.hash[:length]


class PeerFileIndex(BaseModel):
    """
    Peer -> files snapshot built by one discovery refresh.

    Keys are peer ids as strings, so `1` and `"1"` find the same entry.
    """
    peers: list[Peer] = []
    files: dict[str, list[FileRecord]] = {}

    @field_validator("files", mode="before")
    @classmethod
    def _stringify_keys(cls, value):
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
        return value

    def files_for(self, peer_id: PeerId) -> list[FileRecord] | None:
        """Files for a peer, or None when that peer has not been loaded."""
        return self.files.get(str(peer_id))

    def is_loaded(self, peer_id: PeerId) -> bool:
        return str(peer_id) in self.files
