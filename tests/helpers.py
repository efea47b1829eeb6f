from __future__ import annotations

from collections import deque
from typing import Iterable, Optional


def fake_data(size: int) -> bytes:
    return bytes(i % 16 for i in range(size))


class FakeChannel:
    """Scripted in-memory channel.

    `inbound` is replayed in order by `recv`; a `None` entry stands for a
    timeout. Everything sent is recorded in `sent`.
    """

    def __init__(self, inbound: Iterable[Optional[bytes]] = ()):
        self.inbound = deque(inbound)
        self.sent: list[bytes] = []
        self.recv_calls = 0
        self.closed = False

    def send(self, data: bytes) -> None:
        self.sent.append(bytes(data))

    def recv(self, timeout: float) -> bytes:
        self.recv_calls += 1
        if not self.inbound:
            raise AssertionError("unexpected read: no more scripted packets")
        item = self.inbound.popleft()
        if item is None:
            raise TimeoutError("scripted timeout")
        return item

    def close(self) -> None:
        self.closed = True
