"""Locking and cancellation primitives shared by the core components."""

import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from memvault.errors import OperationCancelledError


class ReadWriteLock:
    """Reader/writer lock with writer preference.

    Any number of readers may hold the lock at once. A writer waits for
    active readers to drain, and new readers queue behind a waiting writer
    so a steady stream of searches cannot starve an upsert.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        """Hold the lock in shared mode for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        """Hold the lock in exclusive mode for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class Deadline:
    """Early-abort signal for long scans.

    Expires when its timeout elapses or when cancel() is called, whichever
    comes first. Scans call check() periodically.

    Args:
        timeout: Seconds until expiry. None means only an explicit cancel
            aborts.
    """

    CHECK_INTERVAL = 256

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._expires_at = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Abort any scan observing this deadline."""
        self._cancelled.set()

    @property
    def expired(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    @property
    def remaining(self) -> Optional[float]:
        """Seconds left before expiry, or None without a timeout."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, operation: str = "scan") -> None:
        """Raise OperationCancelledError if the deadline has passed.

        Args:
            operation: Name used in the error message.
        """
        if self._cancelled.is_set():
            raise OperationCancelledError(f"{operation} cancelled")
        if self._expires_at is not None and time.monotonic() >= self._expires_at:
            raise OperationCancelledError(f"{operation} exceeded its deadline")


def check_deadline(deadline: Optional[Deadline], index: int, operation: str) -> None:
    """Check a deadline every Deadline.CHECK_INTERVAL iterations of a scan."""
    if deadline is not None and index % Deadline.CHECK_INTERVAL == 0:
        deadline.check(operation)
