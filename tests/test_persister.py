import threading

from raftshard.raft.persister import Persister


def test_fresh_persister_is_empty():
    ps = Persister()
    assert ps.read_raft_state() == b""
    assert ps.read_snapshot() == b""
    assert ps.raft_state_size() == 0
    assert ps.snapshot_size() == 0


def test_save_and_read_round_trip():
    ps = Persister()
    ps.save(b"state-bytes", b"snap")
    assert ps.read_raft_state() == b"state-bytes"
    assert ps.read_snapshot() == b"snap"
    assert ps.raft_state_size() == len(b"state-bytes")
    assert ps.snapshot_size() == len(b"snap")


def test_save_none_treated_as_empty():
    ps = Persister()
    ps.save(b"abc", b"def")
    ps.save(b"xyz", None)
    assert ps.read_raft_state() == b"xyz"
    assert ps.read_snapshot() == b""
    assert ps.snapshot_size() == 0


def test_save_copies_mutable_input():
    ps = Persister()
    buf = bytearray(b"hello")
    ps.save(buf, buf)
    buf[0] = ord("j")
    assert ps.read_raft_state() == b"hello"
    assert ps.read_snapshot() == b"hello"


def test_copy_is_independent():
    ps = Persister()
    ps.save(b"one", b"two")
    clone = ps.copy()
    assert clone.read_raft_state() == b"one"
    assert clone.read_snapshot() == b"two"
    ps.save(b"three", b"four")
    assert clone.read_raft_state() == b"one"
    assert clone.read_snapshot() == b"two"
    clone.save(b"", b"")
    assert ps.read_raft_state() == b"three"


def test_concurrent_saves_keep_pairs_consistent():
    ps = Persister()

    def writer(n):
        for _ in range(200):
            value = str(n).encode()
            ps.save(value, value)

    threads = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert ps.read_raft_state() == ps.read_snapshot()
    assert ps.read_raft_state() in {b"0", b"1", b"2", b"3"}