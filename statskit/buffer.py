"""A measure handler that batches serialized measures in memory before writing them."""

from __future__ import annotations

import itertools
import os
import threading
from datetime import datetime
from time import sleep
from typing import Protocol

from statskit.field import Measure

_DEFAULT_BUFFER_SIZE = 1024


class Serializer(Protocol):
    """Turns measures into bytes and writes batches of those bytes."""

    def format_measures(self, time: datetime, *args: Measure) -> bytes:
        """Return the serialized representation of the measures."""

    def write(self, data: bytes) -> int:
        """Write a batch of serialized measures, returning the bytes written."""


class _Slot:
    __slots__ = ("lock", "data")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.data = bytearray()

    def flush(self, writer: Serializer, n: int) -> None:
        chunk = bytes(self.data[:n])
        del self.data[:n]
        if not chunk:
            return
        try:
            writer.write(chunk)
        except OSError:
            # Delivery of metrics is best effort; a failed write drops the batch.
            pass


class Buffer:
    """Serializes measures into a pool of memory buffers and writes them once
    a buffer reaches its target size.

    A batch that does not fit in an empty buffer is still handed to the
    serializer whole, leaving it to decide whether to accept it.
    """

    def __init__(
        self,
        serializer: Serializer,
        buffer_size: int = 0,
        buffer_pool_size: int = 0,
    ) -> None:
        self.serializer = serializer
        self.buffer_size = buffer_size or _DEFAULT_BUFFER_SIZE
        self.buffer_pool_size = buffer_pool_size or 2 * (os.cpu_count() or 1)
        self._slots = [_Slot() for _ in range(self.buffer_pool_size)]
        self._offset = itertools.count(1)

    def handle_measures(self, time: datetime, *args: Measure) -> None:
        """Serialize the measures, writing out the buffer once it is full."""
        if not args:
            return
        size = self.buffer_size
        slot = self._acquire()
        try:
            length = len(slot.data)
            slot.data += self.serializer.format_measures(time, *args)
            if len(slot.data) >= size:
                if length == 0:
                    length = len(slot.data)
                slot.flush(self.serializer, length)
        finally:
            slot.lock.release()

    def flush(self) -> None:
        """Write out everything held in buffers not currently in use."""
        for slot in self._slots:
            if slot.lock.acquire(blocking=False):
                try:
                    slot.flush(self.serializer, len(slot.data))
                finally:
                    slot.lock.release()

    def _acquire(self) -> _Slot:
        n = len(self._slots)
        for attempt in itertools.count(1):
            slot = self._slots[next(self._offset) % n]
            if slot.lock.acquire(blocking=False):
                return slot
            if attempt % n == 0:
                sleep(0)
        raise AssertionError("unreachable")