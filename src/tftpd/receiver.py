from __future__ import annotations

import logging
from dataclasses import dataclass

from .constants import DEFAULT_TIMEOUT_MS, MAX_ATTEMPTS
from .metrics import Metrics
from .net import Channel
from .packet import ErrorCode, MalformedPacket, TransferError, decode_data, encode_ack, encode_error, next_block
from .retry import RetryState
from .store import FileStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WriteTransfer:
    """Accept a file from the peer that sent a write request.

    Blocks are accumulated in memory and handed to the store in one `create`
    once the short final block arrives; nothing is stored on failure.
    """

    channel: Channel
    store: FileStore
    filename: str
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_attempts: int = MAX_ATTEMPTS

    def run(self) -> Metrics:
        metrics = Metrics()
        try:
            if self.store.exists(self.filename):
                raise TransferError(ErrorCode.FILE_ALREADY_EXISTS, f"File already exists: {self.filename}")
            self._receive(metrics)
        except TransferError as exc:
            logger.warning("write of %s aborted: %s", self.filename, exc.message)
            self.channel.send(encode_error(exc.code, exc.message))
            metrics.packets_sent += 1
            metrics.error = exc.code
        return metrics.finish()

    def _receive(self, metrics: Metrics) -> None:
        buf = bytearray()
        block = 0

        while True:
            raw = self._exchange_ack(block, metrics)
            try:
                incoming = decode_data(raw)
            except MalformedPacket as exc:
                raise TransferError(ErrorCode.NOT_DEFINED, "Unable to parse data packet") from exc

            expected = next_block(block)
            if incoming.number != expected:
                raise TransferError(
                    ErrorCode.NOT_DEFINED,
                    f"Expected block #{expected}, but got #{incoming.number} instead",
                )

            buf += incoming.payload
            block = expected
            metrics.blocks += 1
            metrics.bytes_transferred += len(incoming.payload)

            if incoming.final:
                break

        if not self.store.create(self.filename, bytes(buf)):
            raise TransferError(ErrorCode.FILE_ALREADY_EXISTS, f"File already exists: {self.filename}")

        self.channel.send(encode_ack(block))
        metrics.packets_sent += 1
        logger.info("received %s, %d bytes", self.filename, len(buf))

    def _exchange_ack(self, block: int, metrics: Metrics) -> bytes:
        """Send ACK `block` until any datagram comes back or attempts run out."""
        raw = encode_ack(block)
        retry = RetryState.start(self.timeout_ms)

        while True:
            self.channel.send(raw)
            metrics.packets_sent += 1
            try:
                return self.channel.recv(retry.remaining())
            except TimeoutError:
                metrics.timeouts += 1

            retry = retry.retry()
            if retry.exhausted(self.max_attempts):
                raise TransferError(
                    ErrorCode.NOT_DEFINED,
                    f"Failed to get data block #{next_block(block)} after {self.max_attempts} attempts",
                )
            metrics.retransmits += 1
            logger.debug("resending ACK %d for %s; attempt=%d", block, self.filename, retry.attempts)
