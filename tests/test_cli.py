from __future__ import annotations

import json
import logging

from tftpd.bench import run_benchmark
from tftpd.cli import build_parser, main, seed_store


def test_parser_defaults():
    args = build_parser().parse_args(["serve"])
    assert args.port == 69
    assert args.timeout_ms == 5000
    assert args.max_attempts == 5
    assert args.seed == []


def test_bench_roundtrip():
    r = run_benchmark(size_bytes=3000, timeout_ms=500)
    assert r.bytes_transferred == 3000
    assert r.retransmits == 0


def test_bench_command_emits_json(capsys):
    assert main(["bench", "--size-bytes", "1024", "--timeout-ms", "500", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["role"] == "bench"
    assert payload["bytes_transferred"] == 1024


def test_seed_store_loads_by_base_name(tmp_path, caplog):
    (tmp_path / "a.txt").write_bytes(b"alpha")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "a.txt").write_bytes(b"other")
    (sub / "b.bin").write_bytes(b"\x00\x01")

    with caplog.at_level(logging.INFO, logger="tftpd.cli"):
        store = seed_store([str(tmp_path / "a.txt"), str(sub / "a.txt"), str(sub / "b.bin")])

    assert store.names() == ["a.txt", "b.bin"]
    assert store.get("a.txt") == (b"alpha", True)
    assert "skipping duplicate seed name" in caplog.text
    assert "preloaded 2 files: a.txt, b.bin" in caplog.text
