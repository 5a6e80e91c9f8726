"""
Transport layer for PeerLink: endpoints and the UDP datagram transport.
"""

from .endpoint import Endpoint
from .udp import (
    MAX_DATAGRAM_SIZE,
    BindError,
    ClosedError,
    ResolutionError,
    TransportError,
    UDPTransport,
)

__all__ = [
    'Endpoint',
    'UDPTransport',
    'MAX_DATAGRAM_SIZE',
    'TransportError',
    'BindError',
    'ResolutionError',
    'ClosedError',
]
