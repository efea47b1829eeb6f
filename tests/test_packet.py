from __future__ import annotations

import struct

import pytest

from tftpd.constants import BLOCK_SIZE
from tftpd.packet import (
    ErrorCode,
    MalformedPacket,
    Opcode,
    decode_ack,
    decode_data,
    decode_error,
    decode_request,
    encode_ack,
    encode_data,
    encode_error,
    encode_request,
    next_block,
)

from tests.helpers import fake_data


def test_ack_wire_format():
    assert encode_ack(1) == b"\x00\x04\x00\x01"
    assert encode_ack(0xABCD) == b"\x00\x04\xab\xcd"


def test_decode_ack_matches_expected_block():
    assert decode_ack(encode_ack(2), 2) is True
    assert decode_ack(encode_ack(2), 3) is False


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\x00\x04\x00",
        b"\x00\x04\x00\x01\x00",
        b"\x00\x03\x00\x01",
        encode_error(ErrorCode.NOT_DEFINED, "x"),
    ],
)
def test_decode_ack_rejects_malformed_without_raising(raw):
    assert decode_ack(raw, 1) is False


@pytest.mark.parametrize("block", [0, 1, 65535])
def test_ack_roundtrip_at_block_edges(block):
    assert decode_ack(encode_ack(block), block) is True


@pytest.mark.parametrize("block", [0, 1, 65535])
@pytest.mark.parametrize("size", [0, 1, BLOCK_SIZE - 1, BLOCK_SIZE])
def test_data_roundtrip_at_block_and_size_edges(block, size):
    payload = fake_data(size)
    decoded = decode_data(encode_data(payload, block))
    assert decoded.number == block
    assert decoded.payload == payload
    assert decoded.final is (size < BLOCK_SIZE)


def test_data_packet_layout():
    payload = fake_data(BLOCK_SIZE)
    raw = encode_data(payload, 1)
    assert len(raw) == BLOCK_SIZE + 4
    assert struct.unpack("!HH", raw[:4]) == (Opcode.DATA, 1)
    assert raw[4:] == payload


def test_decode_data():
    payload = fake_data(498)
    block = decode_data(encode_data(payload, 2))
    assert block.number == 2
    assert block.payload == payload
    assert block.final is True


def test_full_block_is_not_final():
    block = decode_data(encode_data(fake_data(BLOCK_SIZE), 65535))
    assert block.number == 65535
    assert block.final is False


def test_empty_block_is_final():
    block = decode_data(encode_data(b"", 3))
    assert block.payload == b""
    assert block.final is True


def test_decode_data_rejects_wrong_opcode():
    with pytest.raises(MalformedPacket):
        decode_data(encode_ack(1))


def test_decode_data_rejects_short_and_oversized():
    with pytest.raises(MalformedPacket):
        decode_data(b"\x00\x03\x00")
    with pytest.raises(MalformedPacket):
        decode_data(b"\x00\x03\x00\x01" + b"x" * (BLOCK_SIZE + 1))


def test_error_packet_layout():
    raw = encode_error(ErrorCode.FILE_ALREADY_EXISTS, "File already exists: a")
    assert raw[:4] == b"\x00\x05\x00\x06"
    assert raw.endswith(b"\x00")
    err = decode_error(raw)
    assert err.code == ErrorCode.FILE_ALREADY_EXISTS
    assert err.message == "File already exists: a"


def test_error_packet_with_empty_message():
    assert encode_error(ErrorCode.ILLEGAL_OPERATION, "") == b"\x00\x05\x00\x04\x00"


def test_decode_request():
    req = decode_request(encode_request(Opcode.RRQ, "this_is_a_filename", "octet"))
    assert req.opcode == Opcode.RRQ
    assert req.is_read and not req.is_write
    assert req.filename == "this_is_a_filename"
    assert req.mode == "octet"


def test_decode_request_without_trailing_nul():
    req = decode_request(b"\x00\x02name\x00netascii")
    assert req.is_write
    assert req.filename == "name"
    assert req.mode == "netascii"


def test_decode_request_strips_directories():
    req = decode_request(encode_request(Opcode.WRQ, "../../etc/passwd"))
    assert req.filename == "passwd"


def test_decode_request_keeps_unknown_opcode():
    req = decode_request(b"\x00\x09file\x00octet\x00")
    assert req.opcode == 9
    assert not req.is_read and not req.is_write


@pytest.mark.parametrize("raw", [b"", b"\x00", b"\x00\x01no-terminator", b"\x00\x01dir/\x00octet\x00"])
def test_decode_request_rejects_malformed(raw):
    with pytest.raises(MalformedPacket):
        decode_request(raw)


def test_next_block_rolls_over():
    assert next_block(0) == 1
    assert next_block(65535) == 0
