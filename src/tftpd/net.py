from __future__ import annotations

import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Protocol, Tuple

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


@dataclass(frozen=True, slots=True)
class Impairment:
    loss_rate: float = 0.0
    delay_ms: int = 0

    def should_drop(self) -> bool:
        return random.random() < self.loss_rate

    def sleep_if_needed(self) -> None:
        if self.delay_ms > 0:
            time.sleep(self.delay_ms / 1000.0)


class Channel(Protocol):
    """A datagram endpoint bound to one peer for the lifetime of a transfer."""

    def send(self, data: bytes) -> None: ...

    def recv(self, timeout: float) -> bytes: ...

    def close(self) -> None: ...


class UdpEndpoint:
    """Unconnected UDP socket: the service listener, or a client's socket."""

    def __init__(self, sock: socket.socket, impairment: Impairment | None = None):
        self.sock = sock
        self.impairment = impairment or Impairment()

    @classmethod
    def listening(
        cls,
        host: str,
        port: int,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind((host, port))
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment)

    @classmethod
    def sending(
        cls,
        timeout_ms: int = 0,
        impairment: Impairment | None = None,
    ) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        if timeout_ms > 0:
            sock.settimeout(timeout_ms / 1000.0)
        return cls(sock, impairment)

    @property
    def address(self) -> Address:
        return self.sock.getsockname()

    def sendto(self, data: bytes, addr: Address) -> None:
        if self.impairment.should_drop():
            logger.debug("dropped outbound %d bytes to %s", len(data), addr)
            return
        self.impairment.sleep_if_needed()
        self.sock.sendto(data, addr)

    def recvfrom(self, bufsize: int = 65535, timeout: float | None = None) -> Tuple[bytes, Address]:
        if timeout is not None:
            self.sock.settimeout(max(timeout, 0.001))
        while True:
            data, addr = self.sock.recvfrom(bufsize)
            if self.impairment.should_drop():
                logger.debug("dropped inbound %d bytes from %s", len(data), addr)
                continue
            self.impairment.sleep_if_needed()
            return data, addr

    def close(self) -> None:
        self.sock.close()


class UdpChannel:
    """Per-transfer channel: fresh ephemeral local port, connected to one peer.

    Connecting the socket makes the kernel discard datagrams from any other
    address, so a transfer only ever hears from the peer that started it.
    """

    def __init__(self, sock: socket.socket, peer: Address, impairment: Impairment | None = None):
        self.sock = sock
        self.peer = peer
        self.impairment = impairment or Impairment()

    @classmethod
    def open(cls, peer: Address, host: str = "", impairment: Impairment | None = None) -> "UdpChannel":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((host, 0))
            sock.connect(peer)
        except OSError:
            sock.close()
            raise
        return cls(sock, peer, impairment)

    @property
    def local_address(self) -> Address:
        return self.sock.getsockname()

    def send(self, data: bytes) -> None:
        if self.impairment.should_drop():
            logger.debug("dropped outbound %d bytes to %s", len(data), self.peer)
            return
        self.impairment.sleep_if_needed()
        self.sock.send(data)

    def recv(self, timeout: float, bufsize: int = 65535) -> bytes:
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"no datagram from {self.peer} within {timeout:.3f}s")
            self.sock.settimeout(remaining)
            try:
                data = self.sock.recv(bufsize)
            except ConnectionRefusedError:
                # ICMP port unreachable from an earlier send; keep waiting
                continue
            if self.impairment.should_drop():
                logger.debug("dropped inbound %d bytes from %s", len(data), self.peer)
                continue
            self.impairment.sleep_if_needed()
            return data

    def close(self) -> None:
        self.sock.close()
