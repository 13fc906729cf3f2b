import threading
import time

from pacsvc.rwlock import RWLock


def test_readers_share_the_lock():
    lock = RWLock()
    inside = threading.Barrier(3, timeout=5)

    def reader():
        with lock.read_locked():
            # All three readers must be inside together to pass the barrier.
            inside.wait()

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)
    assert not any(t.is_alive() for t in threads)


def test_writer_excludes_readers():
    lock = RWLock()
    events = []

    lock.acquire_write()

    def reader():
        with lock.read_locked():
            events.append("read")

    t = threading.Thread(target=reader)
    t.start()
    time.sleep(0.1)
    assert events == []
    events.append("write-done")
    lock.release_write()
    t.join(5)
    assert events == ["write-done", "read"]


def test_writer_waits_for_active_reader():
    lock = RWLock()
    events = []

    lock.acquire_read()

    def writer():
        with lock.write_locked():
            events.append("write")

    t = threading.Thread(target=writer)
    t.start()
    time.sleep(0.1)
    assert events == []
    lock.release_read()
    t.join(5)
    assert events == ["write"]


def test_unbalanced_release_raises():
    lock = RWLock()
    try:
        lock.release_read()
    except RuntimeError:
        pass
    else:
        raise AssertionError("release_read without acquire should raise")

    try:
        lock.release_write()
    except RuntimeError:
        pass
    else:
        raise AssertionError("release_write without acquire should raise")
