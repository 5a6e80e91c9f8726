"""
Shared fixtures for the PeerLink test suite.
"""

import queue
import threading
import time

import pytest

from peerlink.config import PeerlinkConfig
from peerlink.channel.io import SocketManager
from peerlink.transport.endpoint import Endpoint
from peerlink.transport.udp import ClosedError, ResolutionError, TransportError

_CLOSE = object()


class MockTransport:
    """
    In-memory stand-in for UDPTransport.

    Inbound datagrams are injected by the test; outbound datagrams are
    recorded. send_to() copies the payload through one shared buffer with a
    pause in the middle, so unserialized concurrent sends corrupt each other.
    """

    def __init__(self, send_delay: float = 0.0):
        self.local_port = 0
        self.max_datagram_size = 65507
        self.sent = []
        self.send_delay = send_delay
        self._buffer = bytearray()
        self._inbox = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def bind(self):
        if self.closed:
            raise ClosedError("Transport is closed")
        self.local_port = 40000

    def resolve(self, host, port):
        try:
            return Endpoint.from_ip(host, port)
        except ValueError as e:
            raise ResolutionError(str(e)) from e

    def send_to(self, payload, endpoint):
        if self.closed:
            raise ClosedError("Transport is closed")
        self._buffer[:] = payload
        if self.send_delay:
            time.sleep(self.send_delay)
        self.sent.append((bytes(self._buffer), endpoint))

    def receive(self):
        item = self._inbox.get()
        if item is _CLOSE or self.closed:
            raise ClosedError("Transport is closed")
        if isinstance(item, Exception):
            raise item
        return item

    def inject(self, payload: bytes, host: str, port: int):
        self._inbox.put((payload, Endpoint.from_ip(host, port)))

    def inject_error(self, message: str = "transient failure"):
        self._inbox.put(TransportError(message))

    def close(self):
        self._closed.set()
        self._inbox.put(_CLOSE)

    def get_local_address(self):
        return ("127.0.0.1", self.local_port)


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def manager(mock_transport):
    """Running SocketManager over a MockTransport."""
    mgr = SocketManager(config=PeerlinkConfig.defaults(), transport=mock_transport)
    mgr.start()
    yield mgr
    mgr.close()
