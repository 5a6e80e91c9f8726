"""
Interactive console chat over PeerLink.

Opens a socket, connects to one peer and prints everything that peer sends,
while lines typed on stdin are sent to it.
"""

import argparse
import logging
import sys
from datetime import datetime
from typing import Optional

from ..config import ConfigError, PeerlinkConfig
from ..transport.udp import BindError, ResolutionError, TransportError
from .io import SocketManager, open_socket_manager
from .listeners import ConnectionListener
from .peer import PeerConnection


class _PrintingListener(ConnectionListener):
    """Writes received data to the console with a timestamp."""

    def __init__(self, out=None):
        self.out = out or sys.stdout

    def data_received(self, data: bytes) -> None:
        text = data.decode('utf-8', errors='replace')
        self.out.write(f"[{datetime.now().isoformat()}] Received: {text}\n")
        self.out.flush()


class InteractiveChat:
    """
    Interactive chat session with a single peer.
    """

    def __init__(self, manager: SocketManager, peer: PeerConnection, out=None):
        """
        Initialize interactive chat.

        Args:
            manager: Running SocketManager
            peer: PeerConnection to chat with
            out: Stream for console output (defaults to stdout)
        """
        self.manager = manager
        self.peer = peer
        self.out = out or sys.stdout
        self.running = False
        self.listener = _PrintingListener(self.out)
        self.peer.add_listener(self.listener)

    def run(self, lines=None) -> None:
        """Read lines until /quit or EOF, then close the socket."""
        self.running = True
        self._print_help()
        source = lines if lines is not None else sys.stdin

        try:
            for raw in source:
                line = raw.rstrip("\r\n")
                if line.startswith('/'):
                    self._handle_command(line)
                elif line:
                    self._send(line)
                if not self.running:
                    break
        except KeyboardInterrupt:
            self._print("\nShutting down...")
        finally:
            self.stop()

    def stop(self) -> None:
        self.running = False
        self.peer.close()
        self.manager.close()

    def _send(self, line: str) -> None:
        try:
            self.peer.send(line.encode('utf-8'))
        except TransportError as e:
            self._print(f"Send error: {e}")
            return
        self._print(f"[{datetime.now().isoformat()}] Sent:     {line}")

    def _handle_command(self, command: str) -> None:
        cmd = command.split(' ', 1)[0].lower()

        if cmd in ('/help', '/h'):
            self._print_help()
        elif cmd in ('/quit', '/q', '/exit'):
            self.running = False
        elif cmd in ('/stats', '/s'):
            stats = self.peer.get_stats()
            self._print("Connection Stats:")
            self._print(f"  Local: {self.manager.get_local_address()}")
            self._print(f"  Remote: {stats['remote_addr']}")
            self._print(f"  Packets sent: {stats['packets_sent']}")
            self._print(f"  Packets received: {stats['packets_received']}")
        else:
            self._print("Unknown command")

    def _print_help(self) -> None:
        self._print("Type a line to send it. Commands:")
        self._print("  /help  - Show this list")
        self._print("  /stats - Show connection statistics")
        self._print("  /quit  - Close the socket and exit")

    def _print(self, text: str) -> None:
        self.out.write(text + "\n")
        self.out.flush()


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Peer-to-peer console chat over UDP",
    )
    parser.add_argument('--port', type=int, default=None,
                        help='Local port to bind (default: from configuration)')
    parser.add_argument('--bind', default=None,
                        help='Local address to bind (default: from configuration)')
    parser.add_argument('--peer-host', required=True, help='Remote peer address')
    parser.add_argument('--peer-port', type=int, required=True, help='Remote peer port')
    parser.add_argument('--log-level', default='WARNING',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    return parser


def main(argv: Optional[list] = None) -> int:
    """Console entry point."""
    args = create_argument_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(name)s %(levelname)s: %(message)s',
    )

    try:
        config = PeerlinkConfig()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    try:
        manager = open_socket_manager(port=args.port, address=args.bind, config=config)
    except BindError as e:
        print(f"Invalid port: {e}", file=sys.stderr)
        return 1
    print(f"Opened socket on port {manager.actual_port}.")

    try:
        peer = manager.connect(args.peer_host, args.peer_port)
    except ResolutionError as e:
        print(f"Unknown host: {e}", file=sys.stderr)
        manager.close()
        return 1

    InteractiveChat(manager, peer).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
