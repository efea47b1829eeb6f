from __future__ import annotations

import threading
from typing import Optional, Tuple


class FileStore:
    """In-memory, name-keyed byte store shared by all transfers.

    `create` is an atomic check-and-create: two concurrent writers of the same
    name can never both succeed. Stored bytes are immutable, so readers get
    the same object back without copying.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._files: dict[str, bytes] = {}

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._files

    def create(self, name: str, data: bytes) -> bool:
        with self._lock:
            if name in self._files:
                return False
            self._files[name] = bytes(data)
            return True

    def get(self, name: str) -> Tuple[bytes, bool]:
        with self._lock:
            data: Optional[bytes] = self._files.get(name)
        if data is None:
            return b"", False
        return data, True

    def reset(self) -> None:
        with self._lock:
            self._files.clear()

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._files)

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)
