"""
UDP Transport for PeerLink.

Thin wrapper over a datagram socket that distinguishes an intentional
close from ordinary I/O failures, so a receiving thread can stop cleanly.
"""

import selectors
import socket
import threading
from typing import Optional, Tuple

from .endpoint import Endpoint

# Largest UDP payload that fits an IPv4 datagram (65535 - 8 - 20)
MAX_DATAGRAM_SIZE = 65507

_RECV_BUFFER_SIZE = 65536


class TransportError(Exception):
    """Raised when transport operations fail."""
    pass


class BindError(TransportError):
    """Raised when the local endpoint cannot be bound."""
    pass


class ResolutionError(TransportError):
    """Raised when a destination address cannot be resolved."""
    pass


class ClosedError(TransportError):
    """Raised when the transport is used after close()."""
    pass


class UDPTransport:
    """
    UDP transport implementation for PeerLink.

    Sends raw payloads to an Endpoint and blocks on receive until a
    datagram arrives or the transport is closed.
    """

    def __init__(self, local_host: str = "0.0.0.0", local_port: int = 0,
                 family: int = socket.AF_INET,
                 max_datagram_size: int = MAX_DATAGRAM_SIZE):
        """
        Initialize UDP transport.

        Args:
            local_host: Local interface to bind to
            local_port: Local port to bind to (0 = auto-assign)
            family: socket.AF_INET or socket.AF_INET6
            max_datagram_size: Largest payload accepted by send_to()
        """
        self.local_host = local_host
        self.local_port = local_port
        self.family = family
        self.max_datagram_size = max_datagram_size
        self._socket: Optional[socket.socket] = None
        self._wakeup_r: Optional[socket.socket] = None
        self._wakeup_w: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._closed = threading.Event()
        self._is_bound = False

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def bind(self) -> None:
        """
        Bind the UDP socket to the local address.

        Raises:
            BindError: If binding fails
            ClosedError: If the transport was already closed
        """
        if self._closed.is_set():
            raise ClosedError("Transport is closed")
        if self._is_bound:
            return

        sock = None
        try:
            sock = socket.socket(self.family, socket.SOCK_DGRAM)
            sock.bind((self.local_host, self.local_port))
        except OSError as e:
            if sock is not None:
                sock.close()
            raise BindError(
                f"Failed to bind UDP socket to {self.local_host}:{self.local_port}: {e}"
            ) from e

        self._socket = sock
        self._wakeup_r, self._wakeup_w = socket.socketpair()
        self._wakeup_r.setblocking(False)
        self._selector = selectors.DefaultSelector()
        self._selector.register(sock, selectors.EVENT_READ)
        self._selector.register(self._wakeup_r, selectors.EVENT_READ)

        # Update local_port if auto-assigned
        if self.local_port == 0:
            self.local_port = sock.getsockname()[1]

        self._is_bound = True

    def resolve(self, host: str, port: int) -> Endpoint:
        """
        Resolve a host name to an Endpoint in this transport's family.

        Raises:
            ResolutionError: If the host cannot be resolved
        """
        if not 0 <= port <= 0xFFFF:
            raise ResolutionError(f"Port out of range: {port}")
        try:
            infos = socket.getaddrinfo(host, port, self.family, socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionError(f"Cannot resolve {host!r}: {e}") from e
        if not infos:
            raise ResolutionError(f"No address found for {host!r}")
        sockaddr = infos[0][4]
        return Endpoint.from_ip(sockaddr[0], port)

    def send_to(self, payload: bytes, endpoint: Endpoint) -> None:
        """
        Send one datagram to an endpoint.

        Args:
            payload: Raw bytes to send
            endpoint: Destination endpoint

        Raises:
            ClosedError: If the transport has been closed
            TransportError: If the payload is too large or sending fails
        """
        if self._closed.is_set():
            raise ClosedError("Transport is closed")
        if len(payload) > self.max_datagram_size:
            raise TransportError(
                f"Payload of {len(payload)} bytes exceeds datagram limit "
                f"of {self.max_datagram_size} bytes"
            )
        if not self._is_bound:
            self.bind()

        sock = self._socket
        try:
            if sock is None:
                raise ClosedError("Transport is closed")
            sent = sock.sendto(payload, endpoint.as_sockaddr())
        except OSError as e:
            if self._closed.is_set():
                raise ClosedError("Transport is closed") from e
            raise TransportError(f"Failed to send datagram to {endpoint}: {e}") from e

        if sent != len(payload):
            raise TransportError(
                f"Short send to {endpoint}: {sent} of {len(payload)} bytes"
            )

    def receive(self) -> Tuple[bytes, Endpoint]:
        """
        Block until a datagram arrives.

        Returns:
            Tuple of (payload, source endpoint)

        Raises:
            ClosedError: If the transport is (or becomes) closed
            TransportError: If receiving fails for any other reason
        """
        if not self._is_bound:
            self.bind()

        sock, wakeup, selector = self._socket, self._wakeup_r, self._selector
        if self._closed.is_set() or sock is None or wakeup is None or selector is None:
            raise ClosedError("Transport is closed")

        try:
            while True:
                ready = [key.fileobj for key, _ in selector.select()]
                if self._closed.is_set() or wakeup in ready:
                    raise ClosedError("Transport is closed")
                if sock in ready:
                    break
            data, addr = sock.recvfrom(_RECV_BUFFER_SIZE)
        except (OSError, ValueError) as e:
            # ValueError: selector or socket closed by another thread
            if self._closed.is_set():
                raise ClosedError("Transport is closed") from e
            raise TransportError(f"Failed to receive datagram: {e}") from e

        try:
            return data, Endpoint.from_sockaddr(addr)
        except ValueError as e:
            raise TransportError(f"Unrecognised source address {addr!r}") from e

    def close(self) -> None:
        """Close the UDP socket and wake any blocked receive()."""
        if self._closed.is_set():
            return
        self._closed.set()

        if self._wakeup_w is not None:
            try:
                self._wakeup_w.send(b"\0")
            except OSError:
                pass  # receiver already gone

        if self._selector is not None:
            self._selector.close()
        for sock in (self._socket, self._wakeup_w, self._wakeup_r):
            if sock is not None:
                sock.close()
        self._socket = self._wakeup_r = self._wakeup_w = None
        self._selector = None
        self._is_bound = False

    def get_local_address(self) -> Tuple[str, int]:
        """
        Get the local bound address.

        Returns:
            Tuple of (host, port)
        """
        if not self._is_bound or self._socket is None:
            raise TransportError("Socket not bound")

        return self._socket.getsockname()[:2]

    def __repr__(self):
        if self._closed.is_set():
            status = "closed"
        else:
            status = "bound" if self._is_bound else "unbound"
        return f"UDPTransport({self.local_host}:{self.local_port}, {status})"

    def __enter__(self):
        """Context manager entry."""
        self.bind()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
