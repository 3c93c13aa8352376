"""
Directory Client — async wrapper around the backend's peer, file and
transfer endpoints.

Every call goes over the network and may fail. Failures are translated
into the PeerDesk error taxonomy:

- transport failures and timeouts become NetworkError
- non-2xx responses become ServiceError (with the upstream status)
- malformed arguments become ValidationError before any request is made

Upload and download requests are never retried here; a retry could
duplicate a transfer, so that decision belongs to the caller.
"""

import ipaddress
import logging
from typing import Any, BinaryIO
from urllib.parse import quote

import httpx
import pydantic

from config import BACKEND_URL, FILE_BASE_URL, REQUEST_TIMEOUT
from directory.models import FileRecord, Peer, PeerId
from errors import NetworkError, ServiceError, ValidationError

logger = logging.getLogger(__name__)

_peer_list = pydantic.TypeAdapter(list[Peer])
_file_list = pydantic.TypeAdapter(list[FileRecord])


def validate_ipv4(ip: str) -> str:
    """Return the dotted-quad string or raise ValidationError."""
    if not isinstance(ip, str) or ip.count(".") != 3:
        raise ValidationError(f"Invalid IPv4 address: {ip!r}")
    try:
        return str(ipaddress.IPv4Address(ip.strip()))
    except ValueError:
        raise ValidationError(f"Invalid IPv4 address: {ip!r}") from None


def _require(**values: Any) -> None:
    missing = [name for name, value in values.items() if value is None or value == ""]
    if missing:
        raise ValidationError(f"Missing required value(s): {', '.join(missing)}")


class DirectoryClient:
    """Typed request/response mapping over the backend REST API."""

    def __init__(
        self,
        base_url: str = BACKEND_URL,
        file_base_url: str = FILE_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.file_base_url = file_base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "DirectoryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request and translate any failure into the error taxonomy."""
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {e}")
            raise NetworkError(f"Request to {self.base_url}{path} timed out") from e
        except httpx.TransportError as e:
            logger.error(f"Cannot reach backend for {method} {path}: {e}")
            raise NetworkError(f"Cannot connect to backend at {self.base_url}") from e

        if response.is_error:
            detail = response.text.strip() or "Failed to fetch"
            logger.warning(f"{method} {path} failed with {response.status_code}: {detail}")
            raise ServiceError(detail, upstream_status=response.status_code)
        return response

    @staticmethod
    def _decode(adapter: pydantic.TypeAdapter, response: httpx.Response, what: str):
        try:
            # The backend encodes an empty result set as JSON null
            payload = response.json()
            return adapter.validate_python(payload if payload is not None else [])
        except (ValueError, pydantic.ValidationError) as e:
            logger.error(f"Malformed {what} response: {e}")
            raise ServiceError(f"Malformed {what} response from backend") from e

    # --- Peers ---

    async def register_peer(self, ip: str) -> Peer:
        """Register this machine's IP with the directory and return the new peer."""
        ip = validate_ipv4(ip)
        response = await self._request("POST", "/register", json={"ip": ip})
        try:
            peer = Peer.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as e:
            raise ServiceError("Malformed registration response from backend") from e
        logger.info(f"Registered peer {peer.id} ({peer.ip}:{peer.port})")
        return peer

    async def list_peers(self) -> list[Peer]:
        response = await self._request("GET", "/peers")
        return self._decode(_peer_list, response, "peer list")

    async def list_sources(self, file_hash: str) -> list[Peer]:
        """Return the peers that hold the given content hash."""
        if not file_hash or not file_hash.strip():
            raise ValidationError("A content hash is required")
        response = await self._request("GET", f"/sources/{quote(file_hash, safe='')}")
        return self._decode(_peer_list, response, "source list")

    # --- Files ---

    async def list_files(self) -> list[FileRecord]:
        response = await self._request("GET", "/files")
        return self._decode(_file_list, response, "file list")

    async def list_peer_files(self, peer_id: PeerId) -> list[FileRecord]:
        """
        Return the files held by one peer.

        An unknown peer yields an empty list and a warning instead of an error.
        """
        _require(peer_id=peer_id)
        try:
            response = await self._request("GET", f"/peer_files/{quote(str(peer_id), safe='')}")
        except ServiceError as e:
            if e.upstream_status == 404:
                logger.warning(f"Peer {peer_id} is unknown to the backend; treating as no files")
                return []
            raise
        return self._decode(_file_list, response, f"file list for peer {peer_id}")

    def file_url(self, peer_id: PeerId, filename: str) -> str:
        """Static URL a browser can fetch the stored file from."""
        _require(peer_id=peer_id, filename=filename)
        return f"{self.file_base_url}/{quote(str(peer_id), safe='')}/{quote(filename, safe='')}"

    # --- Transfers ---

    async def upload_file(
        self, peer_id: PeerId, filename: str, content: bytes | BinaryIO
    ) -> str:
        """
        Upload a file into a peer's share.

        Returns the backend's text acknowledgement. Success means the
        backend accepted the file, not that it has been replicated.
        """
        _require(peer_id=peer_id, filename=filename)
        if content is None:
            raise ValidationError("Missing required value(s): content")
        response = await self._request(
            "POST",
            "/upload",
            data={"peer_id": str(peer_id)},
            files={"file": (filename, content)},
        )
        logger.info(f"Uploaded '{filename}' for peer {peer_id}")
        return response.text

    async def request_download(
        self, destination_peer_id: PeerId, source_peer_id: PeerId, filename: str
    ) -> str:
        """Ask the backend to copy `filename` from the source peer to the destination."""
        _require(
            destination_peer_id=destination_peer_id,
            source_peer_id=source_peer_id,
            filename=filename,
        )
        form = {
            "peer_id": str(destination_peer_id),
            "source_peer_id": str(source_peer_id),
            "filename": filename,
        }
        response = await self._request("POST", "/download", data=form)
        logger.info(
            f"Download of '{filename}' from peer {source_peer_id} "
            f"to peer {destination_peer_id} accepted"
        )
        return response.text

    # --- Health ---

    async def check_liveness(self) -> bool:
        """
        Pre-flight check that the backend API answers.

        Returns True or raises; there is no structured health code, so
        "down" and "degraded" differ only in the error message.
        """
        try:
            await self._request("GET", "/peers", headers={"Accept": "application/json"})
        except NetworkError:
            raise
        except ServiceError as e:
            raise ServiceError(
                f"API server is not responding: {e.message}", upstream_status=e.upstream_status
            ) from e
        return True
