from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from .constants import BLOCK_SIZE, DEFAULT_TIMEOUT_MS, MAX_ATTEMPTS
from .metrics import Metrics
from .net import Channel
from .packet import DataBlock, ErrorCode, TransferError, decode_ack, encode_data, encode_error, next_block
from .retry import RetryState
from .store import FileStore

logger = logging.getLogger(__name__)


def iter_blocks(data: bytes) -> Iterator[DataBlock]:
    """Split `data` into numbered blocks, starting at block 1.

    The last block is always shorter than BLOCK_SIZE, so a file whose size is
    an exact multiple of BLOCK_SIZE ends with an empty block.
    """
    number = 1
    offset = 0
    while True:
        block = DataBlock.make(number, data[offset : offset + BLOCK_SIZE])
        yield block
        if block.final:
            return
        offset += BLOCK_SIZE
        number = next_block(number)


@dataclass(slots=True)
class ReadTransfer:
    """Serve a stored file to the peer that sent a read request."""

    channel: Channel
    store: FileStore
    filename: str
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_attempts: int = MAX_ATTEMPTS

    def run(self) -> Metrics:
        metrics = Metrics()
        try:
            data, found = self.store.get(self.filename)
            if not found:
                raise TransferError(ErrorCode.FILE_NOT_FOUND, f"File not found: {self.filename}")

            logger.info("sending %s (%d bytes)", self.filename, len(data))
            for block in iter_blocks(data):
                self._send_block(block, metrics)
        except TransferError as exc:
            logger.warning("read of %s aborted: %s", self.filename, exc.message)
            self.channel.send(encode_error(exc.code, exc.message))
            metrics.packets_sent += 1
            metrics.error = exc.code
            return metrics.finish()

        logger.info("sent %s in %d blocks", self.filename, metrics.blocks)
        return metrics.finish()

    def _send_block(self, block: DataBlock, metrics: Metrics) -> None:
        raw = encode_data(block.payload, block.number)
        retry = RetryState.start(self.timeout_ms)

        while True:
            self.channel.send(raw)
            metrics.packets_sent += 1
            if self._await_ack(block.number, retry, metrics):
                metrics.blocks += 1
                metrics.bytes_transferred += len(block.payload)
                return

            retry = retry.retry()
            if retry.exhausted(self.max_attempts):
                raise TransferError(
                    ErrorCode.NOT_DEFINED,
                    f"Failed to get ACK for data block {block.number} after {self.max_attempts} attempts",
                )
            metrics.retransmits += 1
            logger.debug("resending block %d of %s; attempt=%d", block.number, self.filename, retry.attempts)

    def _await_ack(self, number: int, retry: RetryState, metrics: Metrics) -> bool:
        # a stray, malformed or mismatched reply costs the attempt just like a timeout
        try:
            raw = self.channel.recv(retry.remaining())
        except TimeoutError:
            metrics.timeouts += 1
            return False
        return decode_ack(raw, number)
