from __future__ import annotations

HEADER_FORMAT = "!HH"  # opcode, block number / error code

RRQ = 1
WRQ = 2
DATA = 3
ACK = 4
ERROR = 5

ERR_NOT_DEFINED = 0
ERR_FILE_NOT_FOUND = 1
ERR_ACCESS_VIOLATION = 2
ERR_DISK_FULL = 3
ERR_ILLEGAL_OPERATION = 4
ERR_UNKNOWN_TRANSFER_ID = 5
ERR_FILE_ALREADY_EXISTS = 6
ERR_NO_SUCH_USER = 7

BLOCK_SIZE = 512
MAX_BLOCK_NUMBER = 0xFFFF
MAX_ATTEMPTS = 5

SERVICE_PORT = 69
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_MODE = "octet"
