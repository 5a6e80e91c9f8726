"""
Peer-to-peer connection handles for PeerLink.

A PeerConnection names one remote endpoint on a SocketManager. It sends
datagrams to that endpoint and hands datagrams received from it to the
listeners registered on its ListenerRegistry.
"""

import logging
import threading
from collections import deque
from concurrent.futures import Executor
from functools import total_ordering
from typing import TYPE_CHECKING, Any, Deque, Dict, Optional

from ..transport.endpoint import Endpoint
from .listeners import Listener, ListenerRegistry

if TYPE_CHECKING:
    from .io import SocketManager

logger = logging.getLogger(__name__)


@total_ordering
class PeerConnection:
    """
    Manages sending to and receiving from one remote peer.

    Connections order and compare equal by endpoint (address bytes, then
    port). Creating a connection registers it with its manager for routing;
    call close() to unregister it, otherwise the manager keeps routing
    packets to it for the manager's lifetime.
    """

    def __init__(self, manager: "SocketManager", host: str, port: int):
        """
        Initialize peer connection.

        Args:
            manager: SocketManager whose socket this connection uses
            host: Remote peer hostname or IP address
            port: Remote peer port

        Raises:
            ResolutionError: If host cannot be resolved
        """
        self.manager = manager
        self.endpoint: Endpoint = manager.resolve(host, port)
        self.listeners = ListenerRegistry()
        self._send_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._packets_sent = 0
        self._packets_received = 0
        self._closed = False
        self._inbox: Deque[bytes] = deque()
        self._inbox_lock = threading.Lock()
        self._draining = False

        manager.register_peer(self)

    @property
    def address(self) -> bytes:
        return self.endpoint.address

    @property
    def port(self) -> int:
        return self.endpoint.port

    def send(self, data: bytes) -> None:
        """
        Send one datagram to the remote peer.

        Raises:
            ClosedError: If the manager has been closed
            TransportError: If the payload is too large or sending fails
        """
        with self._send_lock:
            self.manager.send_packet(bytes(data), self.endpoint)
            self._packets_sent += 1

    def add_listener(self, listener: Listener, header: bytes = b"") -> None:
        """
        Add a listener for data starting with header.

        An empty header receives every datagram from this peer. Adding the
        same listener under the same header twice has no effect.
        """
        self.listeners.add(listener, header)

    def remove_listener(self, listener: Listener, header: Optional[bytes] = None) -> None:
        """
        Remove a listener.

        Args:
            listener: Listener to remove
            header: Remove only this header's entry; None removes every entry
        """
        if header is None:
            self.listeners.remove_all(listener)
        else:
            self.listeners.remove(listener, header)

    def packet_received(self, data: bytes) -> None:
        """
        Deliver a datagram from this peer to every matching listener.

        Called by the SocketManager on a dispatch thread. Listeners share one
        immutable copy of the payload; an exception in one listener is logged
        and does not stop delivery to the others.
        """
        with self._stats_lock:
            self._packets_received += 1

        payload = bytes(data)
        for listener in self.listeners.match(payload):
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Listener {listener!r} failed on data from {self.endpoint}")

    def queue_packet(self, data: bytes, executor: Executor) -> None:
        """
        Queue a datagram for delivery on executor.

        At most one task per connection is in flight: packets from this
        peer are delivered in arrival order, and a slow listener here only
        holds one worker while other peers keep being served.

        Raises:
            RuntimeError: If executor has been shut down
        """
        with self._inbox_lock:
            self._inbox.append(data)
            if self._draining:
                return
            self._draining = True
        try:
            executor.submit(self._drain, executor)
        except RuntimeError:
            with self._inbox_lock:
                self._inbox.clear()
                self._draining = False
            raise

    def _drain(self, executor: Executor) -> None:
        # One packet per task so peers with queued work take turns on the pool
        with self._inbox_lock:
            if not self._inbox:
                self._draining = False
                return
            data = self._inbox.popleft()

        self.packet_received(data)

        with self._inbox_lock:
            if not self._inbox:
                self._draining = False
                return
        try:
            executor.submit(self._drain, executor)
        except RuntimeError:
            # Pool shut down by the manager's close()
            with self._inbox_lock:
                self._inbox.clear()
                self._draining = False

    def close(self) -> None:
        """Stop receiving for this peer and unregister it from the manager."""
        if self._closed:
            return
        self._closed = True
        self.manager.unregister_peer(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics."""
        with self._stats_lock:
            received = self._packets_received
        return {
            'remote_addr': self.endpoint.as_sockaddr(),
            'packets_sent': self._packets_sent,
            'packets_received': received,
            'listeners': len(self.listeners),
            'registered': not self._closed,
        }

    def __eq__(self, other):
        if not isinstance(other, PeerConnection):
            return NotImplemented
        return self.endpoint == other.endpoint

    def __lt__(self, other):
        if not isinstance(other, PeerConnection):
            return NotImplemented
        return self.endpoint < other.endpoint

    def __hash__(self):
        return hash(self.endpoint)

    def __repr__(self):
        return f"PeerConnection({self.endpoint})"

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
