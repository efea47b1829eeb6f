from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .constants import DEFAULT_TIMEOUT_MS, MAX_ATTEMPTS
from .metrics import Metrics
from .net import Address, Impairment, UdpEndpoint
from .packet import (
    ErrorCode,
    MalformedPacket,
    Opcode,
    TransferError,
    decode_ack,
    decode_data,
    decode_error,
    encode_ack,
    encode_data,
    encode_request,
    next_block,
    peek_opcode,
)
from .retry import RetryState
from .sender import iter_blocks

logger = logging.getLogger(__name__)

Accept = Callable[[bytes], bool]


class RemoteError(Exception):
    """The server ended the transfer with an ERROR packet."""

    def __init__(self, code: int, message: str):
        super().__init__(f"server error {code}: {message}")
        self.code = code
        self.message = message


@dataclass(slots=True)
class Client:
    """Lock-step client for the server in this package.

    The first reply to a request reveals the transfer's own port; every later
    packet goes there and datagrams from any other address are ignored.
    """

    server: Address
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_attempts: int = MAX_ATTEMPTS
    impairment: Impairment = field(default_factory=Impairment)

    def get(self, filename: str) -> tuple[bytes, Metrics]:
        metrics = Metrics()
        udp = UdpEndpoint.sending(impairment=self.impairment)
        try:
            out = bytearray()
            outgoing = encode_request(Opcode.RRQ, filename)
            dest = self.server
            peer: Address | None = None
            expected = 1

            while True:
                raw, peer = self._exchange(udp, outgoing, dest, peer, metrics, lambda r: _is_data(r, expected))
                block = decode_data(raw)
                out += block.payload
                metrics.blocks += 1
                metrics.bytes_transferred += len(block.payload)
                dest = peer
                outgoing = encode_ack(block.number)
                if block.final:
                    udp.sendto(outgoing, dest)
                    metrics.packets_sent += 1
                    break
                expected = next_block(expected)
        finally:
            udp.close()
        return bytes(out), metrics.finish()

    def put(self, filename: str, data: bytes) -> Metrics:
        metrics = Metrics()
        udp = UdpEndpoint.sending(impairment=self.impairment)
        try:
            _, peer = self._exchange(
                udp,
                encode_request(Opcode.WRQ, filename),
                self.server,
                None,
                metrics,
                lambda r: decode_ack(r, 0),
            )
            for block in iter_blocks(data):
                self._exchange(
                    udp,
                    encode_data(block.payload, block.number),
                    peer,
                    peer,
                    metrics,
                    lambda r, n=block.number: decode_ack(r, n),
                )
                metrics.blocks += 1
                metrics.bytes_transferred += len(block.payload)
        finally:
            udp.close()
        return metrics.finish()

    def _exchange(
        self,
        udp: UdpEndpoint,
        outgoing: bytes,
        dest: Address,
        peer: Address | None,
        metrics: Metrics,
        accept: Accept,
    ) -> tuple[bytes, Address]:
        """Send `outgoing` until `accept` takes a reply from the transfer peer."""
        retry = RetryState.start(self.timeout_ms)
        while True:
            udp.sendto(outgoing, dest)
            metrics.packets_sent += 1
            reply = self._await(udp, peer, retry, metrics, accept)
            if reply is not None:
                return reply

            retry = retry.retry()
            if retry.exhausted(self.max_attempts):
                raise TransferError(ErrorCode.NOT_DEFINED, f"no reply from {dest} after {self.max_attempts} attempts")
            metrics.retransmits += 1

    def _await(
        self,
        udp: UdpEndpoint,
        peer: Address | None,
        retry: RetryState,
        metrics: Metrics,
        accept: Accept,
    ) -> tuple[bytes, Address] | None:
        while True:
            try:
                raw, addr = udp.recvfrom(timeout=retry.remaining())
            except TimeoutError:
                metrics.timeouts += 1
                return None
            if peer is not None and addr != peer:
                logger.debug("ignoring datagram from unknown transfer id %s", addr)
                continue
            try:
                if peek_opcode(raw) == Opcode.ERROR:
                    err = decode_error(raw)
                    raise RemoteError(err.code, err.message)
            except MalformedPacket:
                continue
            if accept(raw):
                return raw, addr
            # duplicates of an earlier packet are answered by the next resend


def _is_data(raw: bytes, expected: int) -> bool:
    try:
        return decode_data(raw).number == expected
    except MalformedPacket:
        return False
