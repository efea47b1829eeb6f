from __future__ import annotations

import threading
from dataclasses import dataclass

from .client import Client
from .net import Impairment
from .server import Server, ServerConfig
from .store import FileStore


@dataclass(frozen=True, slots=True)
class BenchmarkResult:
    bytes_transferred: int
    put_s: float
    get_s: float
    put_mbps: float
    get_mbps: float
    retransmits: int
    timeouts: int


def run_benchmark(
    *,
    size_bytes: int,
    loss_rate: float = 0.0,
    delay_ms: int = 0,
    timeout_ms: int = 250,
    max_attempts: int = 5,
) -> BenchmarkResult:
    """Write then read back `size_bytes` through a loopback server."""
    payload = bytes(i % 251 for i in range(size_bytes))
    impair = Impairment(loss_rate=loss_rate, delay_ms=delay_ms)

    server = Server(
        FileStore(),
        ServerConfig(host="127.0.0.1", port=0, timeout_ms=timeout_ms, max_attempts=max_attempts),
    )
    server.bind()
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()

    try:
        client = Client(server.address, timeout_ms=timeout_ms, max_attempts=max_attempts, impairment=impair)
        put_metrics = client.put("bench.bin", payload)
        data, get_metrics = client.get("bench.bin")
    finally:
        server.shutdown()
        t.join(timeout=10.0)

    if data != payload:
        raise RuntimeError(f"read back {len(data)} bytes that differ from the {size_bytes} written")

    return BenchmarkResult(
        bytes_transferred=size_bytes,
        put_s=put_metrics.duration_s,
        get_s=get_metrics.duration_s,
        put_mbps=put_metrics.throughput_mbps,
        get_mbps=get_metrics.throughput_mbps,
        retransmits=put_metrics.retransmits + get_metrics.retransmits,
        timeouts=put_metrics.timeouts + get_metrics.timeouts,
    )
