"""
PeerLink: peer-to-peer messaging over UDP.

A SocketManager owns one UDP socket and a background receive loop. Peer
connections created on it send datagrams to one remote endpoint and fan
datagrams received from that endpoint out to listeners, filtered by a
byte-prefix header.

Basic Usage:
    >>> from peerlink import open_socket_manager
    >>>
    >>> manager = open_socket_manager(port=9001)
    >>> peer = manager.connect("127.0.0.1", 9002)
    >>> peer.add_listener(lambda data: print(data))        # everything
    >>> peer.add_listener(handle_chat, header=b"CHAT:")     # prefix filter
    >>> peer.send(b"hello")
    >>> peer.close()
    >>> manager.close()

Delivery is exactly as reliable as UDP: no ordering, retransmission or
deduplication is added.
"""

__version__ = "1.0.0"
__author__ = "PeerLink Project"

from .config import PeerlinkConfig, ConfigError

from .transport.endpoint import Endpoint
from .transport.udp import (
    UDPTransport,
    MAX_DATAGRAM_SIZE,
    TransportError,
    BindError,
    ResolutionError,
    ClosedError,
)

from .channel.listeners import ConnectionListener, ListenerRegistry
from .channel.peer import PeerConnection
from .channel.io import SocketManager, open_socket_manager

__all__ = [
    '__version__',

    # Configuration
    'PeerlinkConfig',
    'ConfigError',

    # Transport
    'Endpoint',
    'UDPTransport',
    'MAX_DATAGRAM_SIZE',
    'TransportError',
    'BindError',
    'ResolutionError',
    'ClosedError',

    # Channel
    'ConnectionListener',
    'ListenerRegistry',
    'PeerConnection',
    'SocketManager',
    'open_socket_manager',
]
