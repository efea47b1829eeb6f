from __future__ import annotations

import time
from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class RetryState:
    """Attempt counter and reply deadline for one block exchange.

    A fresh state is started for every block; each failed attempt produces a
    new value via `retry()` instead of mutating a shared counter.
    """

    timeout_s: float
    attempts: int = 1
    deadline: float = 0.0

    @classmethod
    def start(cls, timeout_ms: int) -> "RetryState":
        timeout_s = timeout_ms / 1000.0
        return cls(timeout_s=timeout_s, attempts=1, deadline=time.monotonic() + timeout_s)

    def retry(self) -> "RetryState":
        return replace(self, attempts=self.attempts + 1, deadline=time.monotonic() + self.timeout_s)

    def remaining(self) -> float:
        return max(0.0, self.deadline - time.monotonic())

    def exhausted(self, max_attempts: int) -> bool:
        return self.attempts > max_attempts
