from __future__ import annotations

import io
import threading

from udpfetch.packet import PacketKind
from udpfetch.sessions import SessionStore, TransferSession

CLIENT = ("127.0.0.1", 40000)


def test_create_lookup_remove():
    store = SessionStore()
    s = TransferSession.for_index(CLIENT, b"a.txt\n")
    assert store.create(CLIENT, s) is None
    assert store.lookup(CLIENT) is s
    assert CLIENT in store and len(store) == 1

    assert store.remove(CLIENT) is s
    assert store.lookup(CLIENT) is None
    assert store.remove(CLIENT) is None


def test_create_returns_replaced_session():
    store = SessionStore()
    old = TransferSession.for_file(CLIENT, io.BytesIO(b"old"))
    new = TransferSession.for_file(CLIENT, io.BytesIO(b"new"))
    store.create(CLIENT, old)
    assert store.create(CLIENT, new) is old
    assert store.lookup(CLIENT) is new


def test_remove_with_expected_keeps_replacement():
    store = SessionStore()
    old = TransferSession.for_index(CLIENT, b"x\n")
    new = TransferSession.for_index(CLIENT, b"y\n")
    store.create(CLIENT, old)
    store.create(CLIENT, new)
    assert store.remove(CLIENT, expected=old) is None
    assert store.lookup(CLIENT) is new


def test_close_releases_stream_once():
    stream = io.BytesIO(b"data")
    s = TransferSession.for_file(CLIENT, stream)
    s.close()
    s.close()
    assert stream.closed and s.closed


def test_clear_closes_everything():
    store = SessionStore()
    streams = [io.BytesIO(b"") for _ in range(3)]
    for port, stream in enumerate(streams):
        store.create(("127.0.0.1", port), TransferSession.for_file(("127.0.0.1", port), stream))
    store.clear()
    assert len(store) == 0
    assert all(s.closed for s in streams)


def test_index_session_advances_by_sent_bytes():
    s = TransferSession.for_index(CLIENT, b"abcdefg")
    assert s.data_kind is PacketKind.INDEX_DATA
    assert s.next_chunk(3) == b"abc"
    s.advance(3)
    assert s.next_chunk(3) == b"def"
    s.advance(3)
    assert s.next_chunk(3) == b"g"
    s.advance(3)
    assert s.current_position == s.total_length == 7
    assert s.current_sequence == 3
    assert s.next_chunk(3) == b""


def test_file_session_reads_stream():
    s = TransferSession.for_file(CLIENT, io.BytesIO(b"hello"))
    assert s.data_kind is PacketKind.DATA
    assert s.next_chunk(4) == b"hell"
    s.advance(4)
    assert s.next_chunk(4) == b"o"
    assert s.current_sequence == 1


def test_concurrent_compare_and_advance_is_single_step():
    store = SessionStore()
    s = TransferSession.for_index(CLIENT, b"x" * 100)
    store.create(CLIENT, s)
    winners = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        session = store.lookup(CLIENT)
        with session.lock:
            if session.current_sequence == 0:
                session.advance(10)
                winners.append(threading.get_ident())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert s.current_sequence == 1
