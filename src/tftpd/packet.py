from __future__ import annotations

import enum
import os
import struct
from dataclasses import dataclass

from .constants import (
    ACK,
    BLOCK_SIZE,
    DATA,
    DEFAULT_MODE,
    ERR_ACCESS_VIOLATION,
    ERR_DISK_FULL,
    ERR_FILE_ALREADY_EXISTS,
    ERR_FILE_NOT_FOUND,
    ERR_ILLEGAL_OPERATION,
    ERR_NO_SUCH_USER,
    ERR_NOT_DEFINED,
    ERR_UNKNOWN_TRANSFER_ID,
    ERROR,
    HEADER_FORMAT,
    MAX_BLOCK_NUMBER,
    RRQ,
    WRQ,
)

HEADER = struct.Struct(HEADER_FORMAT)
NUL = b"\x00"


class MalformedPacket(ValueError):
    pass


class Opcode(enum.IntEnum):
    RRQ = RRQ
    WRQ = WRQ
    DATA = DATA
    ACK = ACK
    ERROR = ERROR


class ErrorCode(enum.IntEnum):
    NOT_DEFINED = ERR_NOT_DEFINED
    FILE_NOT_FOUND = ERR_FILE_NOT_FOUND
    ACCESS_VIOLATION = ERR_ACCESS_VIOLATION
    DISK_FULL = ERR_DISK_FULL
    ILLEGAL_OPERATION = ERR_ILLEGAL_OPERATION
    UNKNOWN_TRANSFER_ID = ERR_UNKNOWN_TRANSFER_ID
    FILE_ALREADY_EXISTS = ERR_FILE_ALREADY_EXISTS
    NO_SUCH_USER = ERR_NO_SUCH_USER


class TransferError(Exception):
    """Fatal, non-retryable outcome for one transfer.

    Carries the error code and message reported to the peer in the single
    ERROR packet that ends the transfer.
    """

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True, slots=True)
class Request:
    # opcode stays a raw int so the dispatcher can reject unknown ones
    opcode: int
    filename: str
    mode: str = DEFAULT_MODE

    @property
    def is_read(self) -> bool:
        return self.opcode == Opcode.RRQ

    @property
    def is_write(self) -> bool:
        return self.opcode == Opcode.WRQ


@dataclass(frozen=True, slots=True)
class DataBlock:
    number: int
    payload: bytes
    final: bool

    @staticmethod
    def make(number: int, payload: bytes) -> "DataBlock":
        return DataBlock(number=number, payload=payload, final=len(payload) < BLOCK_SIZE)


@dataclass(frozen=True, slots=True)
class PeerError:
    code: int
    message: str


def next_block(number: int) -> int:
    """Block numbers are 16-bit on the wire and roll over to 0 after 65535."""
    return (number + 1) & MAX_BLOCK_NUMBER


def peek_opcode(raw: bytes) -> int:
    if len(raw) < 2:
        raise MalformedPacket(f"datagram too small to carry an opcode: {len(raw)} bytes")
    return int.from_bytes(raw[:2], "big")


def encode_ack(block: int) -> bytes:
    return HEADER.pack(Opcode.ACK, block)


def decode_ack(raw: bytes, expected: int) -> bool:
    """True only for a well-formed ACK of exactly `expected`; never raises."""
    if len(raw) != HEADER.size:
        return False
    opcode, block = HEADER.unpack(raw)
    return opcode == Opcode.ACK and block == expected


def encode_data(payload: bytes, block: int) -> bytes:
    if len(payload) > BLOCK_SIZE:
        raise ValueError(f"payload too large: {len(payload)}")
    return HEADER.pack(Opcode.DATA, block) + payload


def decode_data(raw: bytes) -> DataBlock:
    if len(raw) < HEADER.size:
        raise MalformedPacket("datagram too small to be a data packet")
    opcode, block = HEADER.unpack_from(raw)
    if opcode != Opcode.DATA:
        raise MalformedPacket(f"incorrect opcode for data packet: {opcode}")
    payload = raw[HEADER.size :]
    if len(payload) > BLOCK_SIZE:
        raise MalformedPacket(f"data payload exceeds block size: {len(payload)}")
    return DataBlock.make(block, payload)


def encode_error(code: int, message: str = "") -> bytes:
    return HEADER.pack(Opcode.ERROR, code) + message.encode("utf-8") + NUL


def decode_error(raw: bytes) -> PeerError:
    if len(raw) < HEADER.size:
        raise MalformedPacket("datagram too small to be an error packet")
    opcode, code = HEADER.unpack_from(raw)
    if opcode != Opcode.ERROR:
        raise MalformedPacket(f"incorrect opcode for error packet: {opcode}")
    message = raw[HEADER.size :].split(NUL, 1)[0]
    return PeerError(code=code, message=message.decode("utf-8", errors="replace"))


def encode_request(opcode: int, filename: str, mode: str = DEFAULT_MODE) -> bytes:
    return struct.pack("!H", opcode) + filename.encode("utf-8") + NUL + mode.encode("ascii") + NUL


def decode_request(raw: bytes) -> Request:
    """Parse an RRQ/WRQ datagram.

    The filename runs from offset 2 to the first NUL and is reduced to its base
    name so a request can never name a path. Whatever follows the NUL is the
    mode; a trailing NUL terminator is dropped.
    """
    opcode = peek_opcode(raw)
    body = raw[2:]
    end = body.find(NUL)
    if end < 0:
        raise MalformedPacket("request filename is not NUL-terminated")

    filename = os.path.basename(body[:end].decode("utf-8", errors="replace"))
    if not filename:
        raise MalformedPacket("request does not name a file")

    mode = body[end + 1 :]
    if mode.endswith(NUL):
        mode = mode[:-1]

    return Request(
        opcode=opcode,
        filename=filename,
        mode=mode.decode("ascii", errors="replace").lower(),
    )
