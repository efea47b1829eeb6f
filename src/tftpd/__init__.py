"""Lock-step TFTP-style file transfer server over UDP.

Layout follows the protocol's layers:
- packet framing (`packet`) apart from the per-transfer state machines
  (`sender` for reads, `receiver` for writes)
- one dispatcher (`server`) that hands each request its own channel and thread
- an injected in-memory `FileStore` as the only state shared between transfers
"""

from .packet import ErrorCode, Opcode
from .server import Server, ServerConfig
from .store import FileStore

__all__ = ["ErrorCode", "FileStore", "Opcode", "Server", "ServerConfig"]
