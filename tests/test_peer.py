"""
Tests for PeerConnection send, listener management and comparison.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from peerlink.channel.io import SocketManager
from peerlink.channel.peer import PeerConnection
from peerlink.config import PeerlinkConfig
from peerlink.transport.endpoint import Endpoint
from peerlink.transport.udp import ClosedError, ResolutionError

from conftest import MockTransport


class TestPeerSend:

    def test_send_goes_to_peer_endpoint(self, manager, mock_transport):
        peer = manager.connect("10.0.0.5", 7000)
        peer.send(b"hello")

        assert mock_transport.sent == [(b"hello", Endpoint.from_ip("10.0.0.5", 7000))]
        assert peer.get_stats()['packets_sent'] == 1

    def test_concurrent_sends_stay_intact(self):
        """Sends through a shared buffer are serialized per connection."""
        transport = MockTransport(send_delay=0.001)
        mgr = SocketManager(config=PeerlinkConfig.defaults(), transport=transport)
        mgr.start()
        try:
            peer = mgr.connect("10.0.0.5", 7000)
            payloads = [f"payload-{i:03d}".encode() * (i + 1) for i in range(20)]
            threads = [threading.Thread(target=peer.send, args=(p,)) for p in payloads]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            sent = sorted(data for data, _ in transport.sent)
            assert sent == sorted(payloads)
        finally:
            mgr.close()

    def test_send_after_close_fails(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        manager.close()

        with pytest.raises(ClosedError):
            peer.send(b"late")

    def test_resolution_error_propagates(self, manager):
        with pytest.raises(ResolutionError):
            PeerConnection(manager, "not-an-ip", 7000)


class TestPeerListeners:

    def test_packet_received_dispatches_per_header(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        got = []
        peer.add_listener(got.append)
        peer.add_listener(got.append, b"AB")

        peer.packet_received(bytearray(b"ABC"))

        assert got == [b"ABC", b"ABC"]
        assert all(type(data) is bytes for data in got)
        assert peer.get_stats()['packets_received'] == 1

    def test_remove_listener_all_headers(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        got = []
        peer.add_listener(got.append, b"A")
        peer.add_listener(got.append, b"B")
        peer.remove_listener(got.append)

        peer.packet_received(b"A1")
        peer.packet_received(b"B1")
        assert got == []

    def test_remove_listener_single_header(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        got = []
        peer.add_listener(got.append, b"A")
        peer.add_listener(got.append, b"B")
        peer.remove_listener(got.append, b"A")

        peer.packet_received(b"A1")
        peer.packet_received(b"B1")
        assert got == [b"B1"]

    def test_failing_listener_isolated(self, manager, caplog):
        peer = manager.connect("10.0.0.5", 7000)
        got = []

        def broken(data):
            raise RuntimeError("listener bug")

        peer.add_listener(broken)
        peer.add_listener(got.append)

        peer.packet_received(b"data")

        assert got == [b"data"]
        assert "listener bug" in caplog.text

    def test_queue_packet_holds_one_worker(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        got = []
        peer.add_listener(got.append)
        submitted = []

        class RecordingExecutor:
            def submit(self, fn, *args):
                submitted.append((fn, args))

        executor = RecordingExecutor()
        peer.queue_packet(b"one", executor)
        peer.queue_packet(b"two", executor)
        peer.queue_packet(b"three", executor)
        assert len(submitted) == 1

        while submitted:
            fn, args = submitted.pop(0)
            fn(*args)

        assert got == [b"one", b"two", b"three"]

    def test_queue_packet_on_shut_down_pool(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        got = []
        peer.add_listener(got.append)

        pool = ThreadPoolExecutor(max_workers=1)
        pool.shutdown()
        with pytest.raises(RuntimeError):
            peer.queue_packet(b"dropped", pool)

        live = ThreadPoolExecutor(max_workers=1)
        try:
            peer.queue_packet(b"kept", live)
        finally:
            live.shutdown(wait=True)
        assert got == [b"kept"]


class TestPeerLifecycle:

    def test_construction_registers(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        assert peer in manager.peers()

    def test_close_unregisters(self, manager):
        peer = manager.connect("10.0.0.5", 7000)
        peer.close()
        peer.close()

        assert manager.peers() == []
        assert peer.get_stats()['registered'] is False

    def test_close_removes_only_that_instance(self, manager):
        first = manager.connect("10.0.0.5", 7000)
        second = manager.connect("10.0.0.5", 7000)
        first.close()

        remaining = manager.peers()
        assert len(remaining) == 1
        assert remaining[0] is second

    def test_context_manager_closes(self, manager):
        with manager.connect("10.0.0.5", 7000):
            assert len(manager.peers()) == 1
        assert manager.peers() == []


class TestPeerComparison:

    def test_equal_by_endpoint(self, manager):
        a = manager.connect("10.0.0.5", 7000)
        b = manager.connect("10.0.0.5", 7000)
        assert a == b
        assert len({a, b}) == 1

    def test_sorted_by_endpoint(self, manager):
        peers = [
            manager.connect("160.98.210.159", 22047),
            manager.connect("10.154.33.158", 4486),
            manager.connect("10.152.68.24", 2992),
            manager.connect("10.154.33.158", 2994),
        ]
        ordered = [(p.endpoint.host, p.port) for p in sorted(peers)]
        assert ordered == [
            ("10.152.68.24", 2992),
            ("10.154.33.158", 2994),
            ("10.154.33.158", 4486),
            ("160.98.210.159", 22047),
        ]
