from __future__ import annotations

import time
from dataclasses import dataclass, field

from .packet import ErrorCode


@dataclass(slots=True)
class Metrics:
    packets_sent: int = 0
    bytes_transferred: int = 0
    blocks: int = 0
    timeouts: int = 0
    retransmits: int = 0
    error: ErrorCode | None = None
    start_ts: float = field(default_factory=time.monotonic)
    end_ts: float | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.end_ts is not None

    @property
    def duration_s(self) -> float:
        if self.end_ts is None:
            return 0.0
        return max(0.0, self.end_ts - self.start_ts)

    @property
    def throughput_mbps(self) -> float:
        if self.duration_s <= 0:
            return 0.0
        return (self.bytes_transferred * 8 / 1_000_000) / self.duration_s

    def finish(self) -> "Metrics":
        self.end_ts = time.monotonic()
        return self
