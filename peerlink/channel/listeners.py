"""
Header-filtered listener registry.

Each peer connection owns one registry mapping a header (a byte prefix,
possibly empty) to the listeners registered under it. A payload reaches a
listener only when the listener's header is a prefix of the payload.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Union


class ConnectionListener(ABC):
    """
    Receives data from a peer connection.

    Subclasses implement data_received(); instances are callable so they can
    be registered anywhere a plain ``Callable[[bytes], None]`` is accepted.
    """

    @abstractmethod
    def data_received(self, data: bytes) -> None:
        """Called with the full payload of each matching datagram."""

    def __call__(self, data: bytes) -> None:
        self.data_received(data)


Listener = Union[ConnectionListener, Callable[[bytes], None]]

_HEADER_TYPES = (bytes, bytearray, memoryview)


def _header_key(header) -> bytes:
    # bytes(5) would silently become five zero bytes
    if not isinstance(header, _HEADER_TYPES):
        raise TypeError(f"Header must be bytes-like, got {type(header).__name__}")
    return bytes(header)


class ListenerRegistry:
    """
    Thread-safe mapping of header -> ordered listener list.

    Headers are keyed by content, so ``b"AB"`` and ``bytearray(b"AB")`` name
    the same entry. A listener appears at most once per header but may be
    registered under several headers independently.
    """

    def __init__(self):
        self._listeners: Dict[bytes, List[Listener]] = {}
        self._lock = threading.Lock()

    def add(self, listener: Listener, header: bytes = b"") -> bool:
        """
        Register a listener under a header.

        Returns:
            True if added, False if the pair was already registered

        Raises:
            TypeError: If listener is not callable or header is not bytes-like
        """
        if not callable(listener):
            raise TypeError(f"Listener must be callable, got {type(listener).__name__}")
        key = _header_key(header)

        with self._lock:
            entries = self._listeners.setdefault(key, [])
            if listener in entries:
                return False
            entries.append(listener)
            return True

    def remove(self, listener: Listener, header: bytes) -> bool:
        """Remove one (listener, header) pair. Returns True if it existed."""
        key = _header_key(header)

        with self._lock:
            entries = self._listeners.get(key)
            if not entries or listener not in entries:
                return False
            entries.remove(listener)
            if not entries:
                del self._listeners[key]
            return True

    def remove_all(self, listener: Listener) -> int:
        """Remove a listener from every header. Returns the number of entries removed."""
        removed = 0
        with self._lock:
            for key in list(self._listeners):
                entries = self._listeners[key]
                if listener in entries:
                    entries.remove(listener)
                    removed += 1
                    if not entries:
                        del self._listeners[key]
        return removed

    def match(self, payload: bytes) -> List[Listener]:
        """
        Return the listeners whose header is a prefix of payload.

        The result is a snapshot taken under the lock; listeners are grouped
        by header and kept in insertion order within each header. A listener
        registered under two matching headers appears twice.
        """
        matched: List[Listener] = []
        with self._lock:
            for header, entries in self._listeners.items():
                if payload.startswith(header):
                    matched.extend(entries)
        return matched

    def headers(self) -> List[bytes]:
        with self._lock:
            return list(self._listeners)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self):
        with self._lock:
            return sum(len(entries) for entries in self._listeners.values())

    def __contains__(self, listener) -> bool:
        with self._lock:
            return any(listener in entries for entries in self._listeners.values())
