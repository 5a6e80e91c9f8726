"""
Channel layer components for PeerLink.

This module provides the peer-facing side of the library:
- Socket management and packet routing (SocketManager)
- Peer connections with header-filtered listeners
- Interactive CLI chat for demos
"""

from .listeners import ConnectionListener, ListenerRegistry
from .peer import PeerConnection
from .io import SocketManager, open_socket_manager
from .interactive import InteractiveChat

__all__ = [
    'ConnectionListener',
    'ListenerRegistry',
    'PeerConnection',
    'SocketManager',
    'open_socket_manager',
    'InteractiveChat',
]
