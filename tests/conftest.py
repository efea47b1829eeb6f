from __future__ import annotations

from typing import Iterator

import pytest

from tftpd.store import FileStore


@pytest.fixture
def store() -> Iterator[FileStore]:
    s = FileStore()
    yield s
    s.reset()
