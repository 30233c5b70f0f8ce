"""Tests for locking and cancellation primitives."""

import threading
import time

import pytest

from memvault.errors import OperationCancelledError
from memvault.utils.concurrency import Deadline, ReadWriteLock, check_deadline


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share(self) -> None:
        lock = ReadWriteLock()
        inside = threading.Barrier(3, timeout=5)

        def reader() -> None:
            with lock.read_locked():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert not any(thread.is_alive() for thread in threads)

    def test_writer_excludes_readers(self) -> None:
        lock = ReadWriteLock()
        events: list[str] = []
        lock.acquire_write()

        def reader() -> None:
            with lock.read_locked():
                events.append("read")

        thread = threading.Thread(target=reader)
        thread.start()
        time.sleep(0.05)
        events.append("write-done")
        lock.release_write()
        thread.join(timeout=5)

        assert events == ["write-done", "read"]

    def test_counter_consistency(self) -> None:
        lock = ReadWriteLock()
        counter = {"value": 0}

        def increment() -> None:
            for _ in range(1000):
                with lock.write_locked():
                    counter["value"] += 1

        threads = [threading.Thread(target=increment) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert counter["value"] == 4000


class TestDeadline:
    """Tests for Deadline."""

    def test_no_timeout_never_expires(self) -> None:
        deadline = Deadline()
        assert not deadline.expired
        assert deadline.remaining is None
        deadline.check()

    def test_cancel(self) -> None:
        deadline = Deadline(timeout=60)
        deadline.cancel()
        assert deadline.expired
        with pytest.raises(OperationCancelledError, match="search cancelled"):
            deadline.check("search")

    def test_timeout_elapses(self) -> None:
        deadline = Deadline(timeout=0)
        assert deadline.expired
        assert deadline.remaining == 0.0
        with pytest.raises(OperationCancelledError, match="deadline"):
            deadline.check()

    def test_check_deadline_interval(self) -> None:
        deadline = Deadline()
        deadline.cancel()

        check_deadline(deadline, 1, "scan")
        check_deadline(None, 0, "scan")
        with pytest.raises(OperationCancelledError):
            check_deadline(deadline, Deadline.CHECK_INTERVAL, "scan")
