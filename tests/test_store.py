from __future__ import annotations

import threading

from tftpd.store import FileStore

from tests.helpers import fake_data


def test_create_and_get():
    store = FileStore()
    data = fake_data(9999)
    assert store.create("a_file", data) is True
    got, found = store.get("a_file")
    assert found is True
    assert got == data


def test_exists():
    store = FileStore()
    assert not store.exists("some_file")
    store.create("some_file", fake_data(1234))
    assert store.exists("some_file")


def test_get_missing():
    assert FileStore().get("nope") == (b"", False)


def test_create_refuses_existing_name():
    store = FileStore()
    assert store.create("f", b"one")
    assert store.create("f", b"two") is False
    assert store.get("f") == (b"one", True)


def test_reset():
    store = FileStore()
    store.create("f", b"x")
    store.reset()
    assert len(store) == 0
    assert not store.exists("f")


def test_concurrent_create_succeeds_once():
    store = FileStore()
    barrier = threading.Barrier(16)
    results: list[bool] = []
    lock = threading.Lock()

    def writer(i: int) -> None:
        barrier.wait()
        ok = store.create("race", bytes([i]))
        with lock:
            results.append(ok)

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert store.names() == ["race"]
