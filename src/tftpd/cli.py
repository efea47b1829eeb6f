from __future__ import annotations

import argparse
import json
import logging
import os
from dataclasses import asdict

from .bench import run_benchmark
from .client import Client, RemoteError
from .constants import DEFAULT_TIMEOUT_MS, MAX_ATTEMPTS, SERVICE_PORT
from .packet import TransferError
from .net import Impairment
from .server import Server, ServerConfig
from .store import FileStore

logger = logging.getLogger(__name__)


def _impairment(args: argparse.Namespace) -> Impairment:
    return Impairment(args.loss_rate, args.delay_ms)


def _emit(payload: dict, as_json: bool) -> None:
    print(json.dumps(payload, indent=2) if as_json else payload)


def seed_store(paths: list[str]) -> FileStore:
    store = FileStore()
    for path in paths:
        with open(path, "rb") as f:
            if not store.create(os.path.basename(path), f.read()):
                logger.warning("skipping duplicate seed name %s", path)
    if len(store):
        logger.info("preloaded %d files: %s", len(store), ", ".join(store.names()))
    return store


def cmd_serve(args: argparse.Namespace) -> int:
    store = seed_store(args.seed)

    config = ServerConfig(
        host=args.host,
        port=args.port,
        timeout_ms=args.timeout_ms,
        max_attempts=args.max_attempts,
        impairment=_impairment(args),
    )
    server = Server(store, config)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("interrupted")
    finally:
        server.shutdown()
    return 0


def _client(args: argparse.Namespace) -> Client:
    return Client(
        (args.host, args.port),
        timeout_ms=args.timeout_ms,
        max_attempts=args.max_attempts,
        impairment=_impairment(args),
    )


def cmd_get(args: argparse.Namespace) -> int:
    try:
        data, metrics = _client(args).get(args.name)
    except (RemoteError, TransferError) as exc:
        logger.error("get %s failed: %s", args.name, exc)
        return 1

    with open(args.out or args.name, "wb") as out:
        out.write(data)

    _emit(
        {
            "role": "get",
            "bytes": metrics.bytes_transferred,
            "seconds": metrics.duration_s,
            "mbps": metrics.throughput_mbps,
            "timeouts": metrics.timeouts,
            "retransmits": metrics.retransmits,
        },
        args.json,
    )
    return 0


def cmd_put(args: argparse.Namespace) -> int:
    with open(args.file, "rb") as f:
        data = f.read()

    name = args.name or os.path.basename(args.file)
    try:
        metrics = _client(args).put(name, data)
    except (RemoteError, TransferError) as exc:
        logger.error("put %s failed: %s", name, exc)
        return 1

    _emit(
        {
            "role": "put",
            "bytes": metrics.bytes_transferred,
            "seconds": metrics.duration_s,
            "mbps": metrics.throughput_mbps,
            "timeouts": metrics.timeouts,
            "retransmits": metrics.retransmits,
        },
        args.json,
    )
    return 0


def cmd_bench(args: argparse.Namespace) -> int:
    r = run_benchmark(
        size_bytes=args.size_bytes,
        loss_rate=args.loss_rate,
        delay_ms=args.delay_ms,
        timeout_ms=args.timeout_ms,
        max_attempts=args.max_attempts,
    )
    _emit({"role": "bench", **asdict(r)}, args.json)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tftpd", description="Lock-step file transfer over UDP (RFC 1350 style).")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        x.add_argument("--timeout-ms", type=int, default=timeout_ms)
        x.add_argument("--max-attempts", type=int, default=MAX_ATTEMPTS)
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate send delay")
        x.add_argument("--json", action="store_true")

    serve = sub.add_parser("serve", help="run the server with an in-memory file store")
    add_common(serve)
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=SERVICE_PORT)
    serve.add_argument("--seed", nargs="*", default=[], metavar="FILE", help="files to preload, by base name")
    serve.set_defaults(func=cmd_serve)

    get = sub.add_parser("get", help="read a file from a server")
    add_common(get)
    get.add_argument("--host", required=True)
    get.add_argument("--port", type=int, default=SERVICE_PORT)
    get.add_argument("--out", default=None)
    get.add_argument("name")
    get.set_defaults(func=cmd_get)

    put = sub.add_parser("put", help="write a file to a server")
    add_common(put)
    put.add_argument("--host", required=True)
    put.add_argument("--port", type=int, default=SERVICE_PORT)
    put.add_argument("--name", default=None, help="remote name (defaults to the file's base name)")
    put.add_argument("file")
    put.set_defaults(func=cmd_put)

    bench = sub.add_parser("bench", help="loopback write + read benchmark")
    add_common(bench, timeout_ms=250)
    bench.add_argument("--size-bytes", type=int, default=1_000_000)
    bench.set_defaults(func=cmd_bench)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
