"""
Loopback benchmark for PeerLink.

Runs two SocketManagers on the loopback interface, sends a batch of
datagrams from one to the other and measures how many arrive, how fast,
and how much process memory the run costs.
"""

import gc
import json
import statistics
import struct
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import psutil

from ..channel.io import open_socket_manager
from .sysinfo import capture_system_info

# Sequence number prefixed to each benchmark payload
_SEQ = struct.Struct("!I")


@dataclass
class BenchmarkResult:
    """Container for benchmark results."""
    name: str
    message_size: int
    messages_sent: int
    messages_received: int
    total_time: float
    throughput_mbps: float
    avg_latency_ms: Optional[float] = None
    p95_latency_ms: Optional[float] = None
    memory_delta_mb: Optional[float] = None

    @property
    def delivery_rate(self) -> float:
        if self.messages_sent == 0:
            return 0.0
        return self.messages_received / self.messages_sent

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['delivery_rate'] = self.delivery_rate
        return result


def measure_memory_mb() -> float:
    """Resident set size of this process in MB."""
    return psutil.Process().memory_info().rss / 1024 / 1024


def run_loopback_benchmark(message_size: int = 512, count: int = 1000,
                           timeout: float = 5.0, host: str = "127.0.0.1") -> BenchmarkResult:
    """
    Send count datagrams of message_size bytes across loopback.

    Args:
        message_size: Payload size in bytes (at least 4)
        count: Number of datagrams to send
        timeout: Seconds to wait for stragglers after the last send
        host: Loopback address to bind and send to

    Returns:
        BenchmarkResult for the run
    """
    if message_size < _SEQ.size:
        raise ValueError(f"message_size must be at least {_SEQ.size} bytes")

    send_times: List[float] = [0.0] * count
    latencies: List[float] = []
    lock = threading.Lock()
    done = threading.Event()

    def on_data(data: bytes) -> None:
        now = time.perf_counter()
        (seq,) = _SEQ.unpack_from(data)
        with lock:
            if seq < count:
                latencies.append(now - send_times[seq])
            if len(latencies) >= count:
                done.set()

    gc.collect()
    memory_before = measure_memory_mb()

    receiver = open_socket_manager(address=host)
    sender = open_socket_manager(address=host)
    try:
        inbound = receiver.connect(host, sender.actual_port)
        inbound.add_listener(on_data)
        outbound = sender.connect(host, receiver.actual_port)

        padding = b"\0" * (message_size - _SEQ.size)
        start = time.perf_counter()
        for seq in range(count):
            send_times[seq] = time.perf_counter()
            outbound.send(_SEQ.pack(seq) + padding)
        done.wait(timeout)
        total_time = time.perf_counter() - start
    finally:
        sender.close()
        receiver.close()

    memory_after = measure_memory_mb()

    with lock:
        received = len(latencies)
        samples = sorted(latencies)

    avg_latency = p95_latency = None
    if samples:
        avg_latency = statistics.mean(samples) * 1000
        p95_latency = samples[min(len(samples) - 1, int(len(samples) * 0.95))] * 1000

    throughput = (received * message_size * 8) / (total_time * 1_000_000) if total_time > 0 else 0.0

    return BenchmarkResult(
        name=f"Loopback-{message_size}B",
        message_size=message_size,
        messages_sent=count,
        messages_received=received,
        total_time=total_time,
        throughput_mbps=throughput,
        avg_latency_ms=avg_latency,
        p95_latency_ms=p95_latency,
        memory_delta_mb=memory_after - memory_before,
    )


@dataclass
class BenchmarkReport:
    """Results of a suite run together with the host they were measured on."""
    results: List[BenchmarkResult]
    system_info: Dict[str, Any] = field(default_factory=capture_system_info)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'system_info': self.system_info,
            'results': [result.to_dict() for result in self.results],
        }

    def save(self, path: str) -> None:
        """Write the report as JSON."""
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


def run_benchmark_suite(message_sizes: Optional[List[int]] = None,
                        count: int = 1000) -> BenchmarkReport:
    """Run run_loopback_benchmark for each message size and record the host."""
    if message_sizes is None:
        message_sizes = [64, 512, 1024, 8192]
    system_info = capture_system_info()
    results = [run_loopback_benchmark(size, count) for size in message_sizes]
    return BenchmarkReport(results=results, system_info=system_info)
