"""
Host details recorded next to benchmark results.

Loopback numbers depend on the machine, the interpreter and on how many
descriptors and threads the process already holds, so every report
carries a snapshot of those.
"""

import platform
import socket
import sys
from datetime import datetime
from typing import Any, Dict

import psutil

from .. import __version__
from ..transport.udp import MAX_DATAGRAM_SIZE


def capture_system_info() -> Dict[str, Any]:
    """Snapshot of host, interpreter, network and process state."""
    memory = psutil.virtual_memory()
    return {
        "timestamp": datetime.now().isoformat(),
        "peerlink": __version__,
        "platform": platform.platform(),
        "python": f"{platform.python_implementation()} {platform.python_version()}",
        "cpu_count": psutil.cpu_count(logical=True),
        "memory_total_gb": round(memory.total / (1024**3), 2),
        "network": {
            "ipv6": socket.has_ipv6,
            "max_datagram_size": MAX_DATAGRAM_SIZE,
        },
        "process": _process_info(),
    }


def _process_info() -> Dict[str, Any]:
    process = psutil.Process()
    info: Dict[str, Any] = {
        "threads": process.num_threads(),
        "rss_mb": round(process.memory_info().rss / 1024 / 1024, 2),
    }
    # num_fds() and RLIMIT_NOFILE exist on POSIX only
    if hasattr(process, "num_fds"):
        info["open_fds"] = process.num_fds()
    if sys.platform != "win32":
        import resource
        soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        info["fd_limit"] = {"soft": soft, "hard": hard}
    return info
