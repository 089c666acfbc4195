"""
Read/write lock guarding catalog and index state.

Readers share the lock; a writer holds it alone. The write side is not
reentrant: a writer that tries to re-acquire it raises instead of deadlocking.
"""
import threading
from contextlib import contextmanager


class ReadWriteLock:
    """Writer-preferring read/write lock"""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = None
        self._waiting_writers = 0

    @contextmanager
    def read(self):
        me = threading.get_ident()
        with self._cond:
            nested = self._writer == me
            if not nested:
                while self._writer is not None or self._waiting_writers:
                    self._cond.wait()
                self._readers += 1
        if nested:
            # The writer already has exclusive access
            yield
            return
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                raise RuntimeError("Catalog write lock is not reentrant")
            self._waiting_writers += 1
            try:
                while self._writer is not None or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = me
        try:
            yield
        finally:
            with self._cond:
                self._writer = None
                self._cond.notify_all()

    @property
    def write_locked(self) -> bool:
        return self._writer is not None
