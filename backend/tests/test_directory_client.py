import json
from urllib.parse import parse_qs

import httpx
import pytest

from directory.client import validate_ipv4
from directory.models import FileRecord, Peer
from errors import NetworkError, ServiceError, ValidationError


@pytest.mark.parametrize("ip", ["10.0.0.1", "192.168.1.254", "0.0.0.0", "255.255.255.255"])
def test_validate_ipv4_accepts_dotted_quads(ip):
    assert validate_ipv4(ip) == ip


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "ip", ["", "abc", "1.2.3", "1.2.3.4.5", "256.1.1.1", "1.2.3.-4", "01.2.3.4", "::1"]
)
async def test_register_rejects_malformed_ip_without_network(make_client, ip):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"id": 1, "ip": ip, "port": 9000})

    client = make_client(handler)
    with pytest.raises(ValidationError):
        await client.register_peer(ip)
    assert calls == []


@pytest.mark.asyncio
async def test_register_returns_peer(make_client):
    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/register"
        assert json.loads(request.read()) == {"ip": "10.0.0.1"}
        return httpx.Response(200, json={"id": 7, "ip": "10.0.0.1", "port": 9000})

    client = make_client(handler)
    peer = await client.register_peer("10.0.0.1")
    assert peer == Peer(id=7, ip="10.0.0.1", port=9000)


@pytest.mark.asyncio
async def test_register_backend_rejection_is_service_error(make_client):
    client = make_client(lambda request: httpx.Response(500, text="Failed to register peer"))

    with pytest.raises(ServiceError) as exc_info:
        await client.register_peer("10.0.0.1")
    assert exc_info.value.upstream_status == 500
    assert "Failed to register peer" in exc_info.value.message


@pytest.mark.asyncio
async def test_unreachable_backend_is_network_error(make_client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(NetworkError) as exc_info:
        await client.register_peer("10.0.0.1")
    # Unreachable still satisfies the ServiceError contract
    assert isinstance(exc_info.value, ServiceError)


@pytest.mark.asyncio
async def test_list_peers_handles_null_as_empty(make_client):
    client = make_client(lambda request: httpx.Response(200, content=b"null"))
    assert await client.list_peers() == []


@pytest.mark.asyncio
async def test_list_files_decodes_records(make_client):
    body = [{"hash": "h1", "filename": "a.txt", "filesize": 1024}]
    client = make_client(lambda request: httpx.Response(200, json=body))

    files = await client.list_files()
    assert files == [FileRecord(filename="a.txt", filesize=1024, hash="h1")]
    assert files[0].short_hash(1) == "h"


@pytest.mark.asyncio
async def test_malformed_payload_is_service_error(make_client):
    client = make_client(lambda request: httpx.Response(200, json=[{"filename": "x"}]))
    with pytest.raises(ServiceError):
        await client.list_files()


@pytest.mark.asyncio
async def test_list_peer_files_unknown_peer_is_empty(make_client, caplog):
    def handler(request):
        assert request.url.path == "/peer_files/42"
        return httpx.Response(404, text="peer not found")

    client = make_client(handler)
    assert await client.list_peer_files(42) == []
    assert "unknown to the backend" in caplog.text


@pytest.mark.asyncio
async def test_list_peer_files_server_error_propagates(make_client):
    client = make_client(lambda request: httpx.Response(500, text="Database error"))
    with pytest.raises(ServiceError):
        await client.list_peer_files(1)


@pytest.mark.asyncio
async def test_list_sources(make_client):
    def handler(request):
        assert request.url.path == "/sources/abc123"
        return httpx.Response(200, json=[{"id": 2, "ip": "10.0.0.2", "port": 9002}])

    client = make_client(handler)
    assert await client.list_sources("abc123") == [Peer(id=2, ip="10.0.0.2", port=9002)]
    with pytest.raises(ValidationError):
        await client.list_sources("  ")


@pytest.mark.asyncio
async def test_request_download_sends_form(make_client):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["form"] = parse_qs(request.read().decode())
        return httpx.Response(200, text="File a.txt downloaded successfully by peer 1")

    client = make_client(handler)
    ack = await client.request_download(1, 2, "a.txt")

    assert ack == "File a.txt downloaded successfully by peer 1"
    assert seen["path"] == "/download"
    assert seen["form"] == {"peer_id": ["1"], "source_peer_id": ["2"], "filename": ["a.txt"]}


@pytest.mark.asyncio
@pytest.mark.parametrize("args", [(None, 2, "a.txt"), (1, None, "a.txt"), (1, 2, ""), (1, 2, None)])
async def test_request_download_requires_every_argument(make_client, args):
    calls = []
    client = make_client(lambda request: calls.append(request) or httpx.Response(200))
    with pytest.raises(ValidationError):
        await client.request_download(*args)
    assert calls == []


@pytest.mark.asyncio
async def test_transfers_are_not_retried(make_client):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(502, text="Failed to fetch file from peer")

    client = make_client(handler)
    with pytest.raises(ServiceError):
        await client.request_download(1, 2, "a.txt")
    with pytest.raises(ServiceError):
        await client.upload_file(1, "a.txt", b"hello")
    assert calls == ["/download", "/upload"]


@pytest.mark.asyncio
async def test_upload_is_multipart(make_client):
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.read()
        return httpx.Response(200, text="File uploaded successfully")

    client = make_client(handler)
    ack = await client.upload_file(3, "notes.txt", b"hello world")

    assert ack == "File uploaded successfully"
    assert seen["content_type"].startswith("multipart/form-data")
    assert b'name="peer_id"' in seen["body"]
    assert b'filename="notes.txt"' in seen["body"]
    assert b"hello world" in seen["body"]


@pytest.mark.asyncio
async def test_check_liveness(make_client):
    client = make_client(lambda request: httpx.Response(200, json=[]))
    assert await client.check_liveness() is True

    down = make_client(lambda request: httpx.Response(503, text="maintenance"))
    with pytest.raises(ServiceError, match="API server is not responding"):
        await down.check_liveness()


def test_file_url(make_client):
    client = make_client(lambda request: httpx.Response(200))
    assert client.file_url(2, "my notes.txt") == "http://files.test/files/2/my%20notes.txt"
