"""
Socket I/O and demultiplexing for PeerLink.

This module provides the SocketManager, which owns one UDP transport, runs
the single background receive loop and routes each datagram to the peer
connections registered for its source endpoint.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from ..config import PeerlinkConfig
from ..transport.endpoint import Endpoint
from ..transport.udp import ClosedError, TransportError, UDPTransport
from .peer import PeerConnection


class SocketManager:
    """
    Manages UDP socket operations and peer routing for PeerLink.
    """

    def __init__(self, bind_port: Optional[int] = None, bind_address: Optional[str] = None,
                 config: Optional[PeerlinkConfig] = None,
                 transport: Optional[UDPTransport] = None):
        """
        Initialize socket manager.

        Args:
            bind_port: Port to bind to (0 for random port, None for configured default)
            bind_address: Address to bind to (None for configured default)
            config: Configuration; defaults are used when omitted
            transport: Pre-built transport, mainly for tests
        """
        self.config = config if config is not None else PeerlinkConfig.defaults()
        self.bind_address = (bind_address if bind_address is not None
                             else self.config.get('network', 'bind_address'))
        self.bind_port = (bind_port if bind_port is not None
                          else self.config.get('network', 'default_port'))
        self.transport = transport if transport is not None else UDPTransport(
            self.bind_address,
            self.bind_port,
            family=self.config.address_family,
            max_datagram_size=self.config.get('network', 'max_datagram_size'),
        )
        self.actual_port: Optional[int] = None
        self.running = False
        self.receive_thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._peers: List[PeerConnection] = []
        self._peers_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def start(self) -> int:
        """
        Bind the transport and start the receive loop.

        Returns:
            Actual port number being used

        Raises:
            BindError: If the socket cannot be bound
            ClosedError: If the manager was already closed
        """
        with self._state_lock:
            if self.running:
                return self.actual_port
            if self.transport.closed:
                raise ClosedError("Socket manager is closed")

            self.transport.bind()
            self.actual_port = self.transport.local_port

            self._executor = ThreadPoolExecutor(
                max_workers=self.config.get('dispatch', 'workers'),
                thread_name_prefix=f"peerlink-dispatch-{self.actual_port}",
            )
            self.running = True
            self.receive_thread = threading.Thread(
                target=self._receive_loop,
                name=f"peerlink-recv-{self.actual_port}",
                daemon=True,
            )
            self.receive_thread.start()

        self.logger.info(f"Socket manager started on {self.bind_address}:{self.actual_port}")
        return self.actual_port

    def close(self) -> None:
        """
        Stop the receive loop and close the socket.

        Sends attempted afterwards raise ClosedError. Listener calls already
        handed to the dispatch pool are allowed to finish but not awaited.
        """
        with self._state_lock:
            if self.transport.closed:
                return
            self.running = False
            self.transport.close()
            executor, self._executor = self._executor, None

        thread = self.receive_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=self.config.get('dispatch', 'join_timeout'))

        if executor is not None:
            executor.shutdown(wait=False)

        self.logger.info("Socket manager stopped")

    stop = close

    @property
    def closed(self) -> bool:
        return self.transport.closed

    def resolve(self, host: str, port: int) -> Endpoint:
        """Resolve a remote host to an Endpoint (raises ResolutionError)."""
        return self.transport.resolve(host, port)

    def connect(self, host: str, port: int) -> PeerConnection:
        """Create a PeerConnection to host:port on this socket."""
        return PeerConnection(self, host, port)

    def send_packet(self, data: bytes, destination: Endpoint) -> None:
        """
        Send a datagram to a destination.

        Raises:
            ClosedError: If the manager has been closed
            TransportError: If sending fails
        """
        if self.transport.closed:
            raise ClosedError("Socket manager is closed")
        self.transport.send_to(data, destination)

    def register_peer(self, peer: PeerConnection) -> None:
        """Start routing packets from peer.endpoint to peer."""
        with self._peers_lock:
            if not any(p is peer for p in self._peers):
                self._peers.append(peer)

    def unregister_peer(self, peer: PeerConnection) -> bool:
        """Stop routing packets to peer. Returns True if it was registered."""
        with self._peers_lock:
            for i, p in enumerate(self._peers):
                if p is peer:
                    del self._peers[i]
                    return True
        return False

    def peers(self) -> List[PeerConnection]:
        """Snapshot of the registered peer connections."""
        with self._peers_lock:
            return list(self._peers)

    def get_local_address(self):
        """
        Get local socket address.

        Returns:
            (host, port) tuple or None if not running
        """
        if self.running:
            return self.transport.get_local_address()
        return None

    def _receive_loop(self):
        """Main receive loop (runs in background thread)."""
        while True:
            try:
                data, source = self.transport.receive()
            except ClosedError:
                break
            except TransportError as e:
                self.logger.warning(f"Error in receive loop: {e}")
                continue

            self._dispatch(data, source)

        self.logger.debug("Receive loop finished")

    def _dispatch(self, data: bytes, source: Endpoint) -> None:
        """Queue data on every peer registered for source."""
        with self._peers_lock:
            targets = [p for p in self._peers if p.endpoint == source]

        if not targets:
            self.logger.debug(f"Dropped {len(data)} bytes from unknown peer {source}")
            return

        executor = self._executor
        for peer in targets:
            if executor is None:
                return
            try:
                peer.queue_packet(data, executor)
            except RuntimeError:
                # Pool shut down by close() while dispatching
                return

    def __enter__(self):
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def __repr__(self):
        status = "running" if self.running else ("closed" if self.closed else "idle")
        return f"SocketManager({self.bind_address}:{self.actual_port or self.bind_port}, {status})"


def open_socket_manager(port: Optional[int] = 0, address: Optional[str] = None,
                        config: Optional[PeerlinkConfig] = None) -> SocketManager:
    """
    Create and start a SocketManager.

    Args:
        port: Port to bind to (0 for any available port, None for configured default)
        address: Address to bind to (None for configured default)
        config: Optional configuration

    Returns:
        Running SocketManager

    Raises:
        BindError: If the port cannot be bound
    """
    manager = SocketManager(bind_port=port, bind_address=address, config=config)
    manager.start()
    return manager
