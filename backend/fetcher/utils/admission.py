"""Concurrency ceiling for in-flight acquisitions.

Requests over the ceiling are rejected immediately instead of queued; the
HTTP layer turns a rejection into 503 + Retry-After.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class CapacityExceeded(Exception):
    def __init__(self, capacity: int) -> None:
        super().__init__(f"Too many concurrent acquisitions (limit {capacity})")
        self.capacity = capacity


class AdmissionController:
    def __init__(self, capacity: int = 5) -> None:
        self._capacity = max(1, int(capacity))
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def try_acquire(self) -> bool:
        with self._lock:
            if self._in_flight >= self._capacity:
                return False
            self._in_flight += 1
            return True

    def release(self) -> None:
        with self._lock:
            if self._in_flight > 0:
                self._in_flight -= 1

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold one slot for the duration of the block; raises CapacityExceeded when full."""
        if not self.try_acquire():
            raise CapacityExceeded(self._capacity)
        try:
            yield
        finally:
            self.release()
