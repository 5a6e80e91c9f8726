"""
Tests for the interactive console chat.
"""

import io

import pytest

from peerlink.channel.interactive import InteractiveChat, create_argument_parser, main
from peerlink.transport.endpoint import Endpoint


@pytest.fixture
def chat(manager):
    out = io.StringIO()
    peer = manager.connect("10.0.0.7", 6000)
    return InteractiveChat(manager, peer, out=out), peer, out


class TestInteractiveChat:

    def test_lines_are_sent(self, chat, mock_transport):
        session, _, out = chat
        session.run(["hello\n", "world\n"])

        target = Endpoint.from_ip("10.0.0.7", 6000)
        assert mock_transport.sent == [(b"hello", target), (b"world", target)]
        assert "Sent:     hello" in out.getvalue()

    def test_quit_stops_reading(self, chat, mock_transport):
        session, _, _ = chat
        session.run(["/quit\n", "never sent\n"])

        assert mock_transport.sent == []
        assert mock_transport.closed

    def test_stats_and_unknown_commands(self, chat):
        session, _, out = chat
        session.run(["/stats\n", "/bogus\n"])

        text = out.getvalue()
        assert "Packets sent: 0" in text
        assert "Unknown command" in text

    def test_received_data_printed(self, chat):
        session, peer, out = chat
        peer.packet_received(b"hi there")
        assert "Received: hi there" in out.getvalue()

    def test_run_closes_peer(self, chat, manager):
        session, peer, _ = chat
        session.run([])
        assert peer.closed
        assert manager.closed


class TestCommandLine:

    def test_requires_peer(self):
        with pytest.raises(SystemExit):
            create_argument_parser().parse_args([])

    def test_parses_options(self):
        args = create_argument_parser().parse_args(
            ["--port", "9001", "--peer-host", "127.0.0.1", "--peer-port", "9002"]
        )
        assert args.port == 9001
        assert args.peer_port == 9002
        assert args.log_level == "WARNING"

    def test_unknown_host_exits_nonzero(self, capsys):
        code = main(["--bind", "127.0.0.1", "--peer-host", "no-such-host.invalid",
                     "--peer-port", "9002"])
        assert code == 1
        assert "Unknown host" in capsys.readouterr().err
