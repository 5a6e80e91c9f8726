"""
Evaluation tools for PeerLink: loopback benchmarks and system information.
"""

from .benchmark import BenchmarkReport, BenchmarkResult, run_benchmark_suite, run_loopback_benchmark
from .sysinfo import capture_system_info

__all__ = [
    'BenchmarkResult',
    'BenchmarkReport',
    'run_loopback_benchmark',
    'run_benchmark_suite',
    'capture_system_info',
]
