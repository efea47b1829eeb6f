from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass, field
from typing import Callable, Union

from .constants import DEFAULT_TIMEOUT_MS, MAX_ATTEMPTS, SERVICE_PORT
from .metrics import Metrics
from .net import Address, Channel, Impairment, UdpChannel, UdpEndpoint
from .packet import ErrorCode, MalformedPacket, decode_request, encode_error
from .receiver import WriteTransfer
from .sender import ReadTransfer
from .store import FileStore

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS = 500

ChannelFactory = Callable[[Address], Channel]
Transfer = Union[ReadTransfer, WriteTransfer]


@dataclass(slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = SERVICE_PORT
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_attempts: int = MAX_ATTEMPTS
    impairment: Impairment = field(default_factory=Impairment)


class Server:
    """Dispatch loop for the well-known service port.

    Every request gets its own channel and its own thread; the loop goes back
    to listening as soon as the transfer is started.
    """

    def __init__(
        self,
        store: FileStore,
        config: ServerConfig | None = None,
        channel_factory: ChannelFactory | None = None,
    ):
        self.store = store
        self.config = config or ServerConfig()
        self.channel_factory = channel_factory or self._open_channel
        self.endpoint: UdpEndpoint | None = None
        self._stopped = threading.Event()

    def __enter__(self) -> "Server":
        self.bind()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def address(self) -> Address:
        if self.endpoint is None:
            raise RuntimeError("server is not bound")
        return self.endpoint.address

    def bind(self) -> UdpEndpoint:
        if self.endpoint is None:
            self.endpoint = UdpEndpoint.listening(
                self.config.host,
                self.config.port,
                timeout_ms=POLL_INTERVAL_MS,
                impairment=self.config.impairment,
            )
            logger.info("listening on %s:%d", *self.endpoint.address)
        return self.endpoint

    def serve_forever(self) -> None:
        endpoint = self.bind()
        while not self._stopped.is_set():
            try:
                raw, addr = endpoint.recvfrom()
            except socket.timeout:
                continue
            except OSError:
                if self._stopped.is_set():
                    break
                raise
            self.handle_request(raw, addr)
        logger.info("dispatcher stopped")

    def shutdown(self) -> None:
        self._stopped.set()
        if self.endpoint is not None:
            self.endpoint.close()
            self.endpoint = None

    def handle_request(self, raw: bytes, addr: Address) -> threading.Thread | None:
        """Open a channel to `addr` and start the requested transfer on it."""
        try:
            channel = self.channel_factory(addr)
        except OSError:
            logger.exception("could not open a channel to %s", addr)
            return None

        try:
            request = decode_request(raw)
        except MalformedPacket as exc:
            logger.warning("bad request from %s: %s", addr, exc)
            self._reject(channel, "Malformed request")
            return None

        if request.is_read:
            transfer: Transfer = ReadTransfer(
                channel,
                self.store,
                request.filename,
                timeout_ms=self.config.timeout_ms,
                max_attempts=self.config.max_attempts,
            )
        elif request.is_write:
            transfer = WriteTransfer(
                channel,
                self.store,
                request.filename,
                timeout_ms=self.config.timeout_ms,
                max_attempts=self.config.max_attempts,
            )
        else:
            logger.warning("illegal opcode %d from %s", request.opcode, addr)
            self._reject(channel, "")
            return None

        # mode is accepted as-is; every transfer moves raw octets
        logger.info(
            "%s %s from %s (mode=%s)",
            "RRQ" if request.is_read else "WRQ",
            request.filename,
            addr,
            request.mode,
        )
        t = threading.Thread(
            target=self._run_transfer,
            args=(transfer, channel),
            name=f"tftp-{addr[0]}:{addr[1]}",
            daemon=True,
        )
        t.start()
        return t

    def _open_channel(self, addr: Address) -> Channel:
        return UdpChannel.open(addr, host=self.config.host, impairment=self.config.impairment)

    def _reject(self, channel: Channel, message: str) -> None:
        try:
            channel.send(encode_error(ErrorCode.ILLEGAL_OPERATION, message))
        except OSError:
            logger.exception("could not reject request")
        finally:
            channel.close()

    @staticmethod
    def _run_transfer(transfer: Transfer, channel: Channel) -> Metrics | None:
        try:
            return transfer.run()
        except Exception:
            logger.exception("transfer of %s crashed", transfer.filename)
            # the peer still gets its one ERROR packet if the channel allows it
            try:
                channel.send(encode_error(ErrorCode.NOT_DEFINED, "Internal server error"))
            except OSError:
                logger.warning("could not report failure of %s to the peer", transfer.filename)
            return None
        finally:
            channel.close()
