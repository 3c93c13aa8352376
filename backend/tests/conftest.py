import asyncio

import httpx
import pytest

from directory.client import DirectoryClient
from directory.models import FileRecord, Peer


class FakeSocket:
    """Stands in for a websockets client connection."""

    def __init__(self, close_delay=0):
        self.sent = []
        self.closed = False
        self.close_delay = close_delay
        self._inbox = asyncio.Queue()

    def feed(self, frame):
        self._inbox.put_nowait(frame)

    def drop(self):
        """Simulate the server closing the connection."""
        self._inbox.put_nowait(None)

    async def send(self, data):
        if self.closed:
            raise ConnectionError("socket is closed")
        self.sent.append(data)

    async def close(self):
        if self.closed:
            return
        if self.close_delay:
            # Real closing handshakes yield to the event loop
            await asyncio.sleep(self.close_delay)
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        frame = await self._inbox.get()
        if frame is None:
            raise StopAsyncIteration
        return frame


class FakeConnector:
    """Callable passed to MessagingChannel in place of websockets.connect."""

    def __init__(self):
        self.urls = []
        self.sockets = []
        self.fail = False
        self.close_delay = 0

    async def __call__(self, url):
        self.urls.append(url)
        if self.fail:
            raise OSError("connection refused")
        socket = FakeSocket(close_delay=self.close_delay)
        self.sockets.append(socket)
        return socket

    @property
    def calls(self):
        return len(self.urls)


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def eventually():
    async def wait(predicate, timeout=1.0):
        async def poll():
            while not predicate():
                await asyncio.sleep(0.005)
        await asyncio.wait_for(poll(), timeout)
    return wait


@pytest.fixture
def peers():
    return [
        Peer(id=1, ip="10.0.0.1", port=9001),
        Peer(id=2, ip="10.0.0.2", port=9002),
    ]


@pytest.fixture
def a_txt():
    return FileRecord(filename="a.txt", filesize=1024, hash="h1")


@pytest.fixture
def make_client():
    def build(handler):
        return DirectoryClient(
            base_url="http://backend.test",
            file_base_url="http://files.test/files",
            transport=httpx.MockTransport(handler),
        )
    return build
