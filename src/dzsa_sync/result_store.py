"""Latest successful sync result per configured server port."""

import copy
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from dzsa_sync.models import ServerEntry, ServerResult


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class ResultStore:
    """Holds the latest DZSA query result per configured port.

    Only ports passed at construction are ever stored or returned.
    Results are deep-copied on the way in and on the way out, so neither
    the writer nor a reader can mutate what the store holds.
    """

    def __init__(self, ports: Iterable[int]):
        self._ports = frozenset(ports)
        self._by_port: dict[int, ServerResult] = {}
        self._lock = ReadWriteLock()

    @property
    def ports(self) -> frozenset[int]:
        """The fixed set of accepted ports."""
        return self._ports

    def set(self, port: int, result: Optional[ServerResult]) -> None:
        """Store a copy of result for port. No-op for unknown ports or None."""
        if result is None or port not in self._ports:
            return
        with self._lock.write():
            self._by_port[port] = copy.deepcopy(result)

    def get(self, port: int) -> tuple[Optional[ServerResult], bool]:
        """Return (copy of result, True), or (None, False) if unknown or not yet synced."""
        if port not in self._ports:
            return None, False
        with self._lock.read():
            result = self._by_port.get(port)
            if result is None:
                return None, False
            return copy.deepcopy(result), True

    def get_all(self) -> list[ServerEntry]:
        """Return a copy of every stored result, ordered by port."""
        with self._lock.read():
            return [
                ServerEntry(port=port, result=copy.deepcopy(self._by_port[port]))
                for port in sorted(self._by_port)
            ]
