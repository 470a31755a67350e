"""A thread-safe pool of reusable byte buffers."""

from __future__ import annotations

import io
import threading


class BufferPool:
    """Hands out byte buffers and takes them back for reuse."""

    def __init__(self, buffer_size: int) -> None:
        self.buffer_size = buffer_size
        self._free: list[io.BytesIO] = []
        self._lock = threading.Lock()

    def get(self) -> io.BytesIO:
        """Return an empty buffer, reusing a pooled one when available."""
        with self._lock:
            if self._free:
                return self._free.pop()
        return io.BytesIO()

    def put(self, buffer: io.BytesIO) -> None:
        """Reset ``buffer`` and return it to the pool."""
        buffer.seek(0)
        buffer.truncate(0)
        with self._lock:
            self._free.append(buffer)