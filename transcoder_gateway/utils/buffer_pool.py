import logging
import threading
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class BufferPool:
    """
    A bounded pool of reusable ``bytearray`` buffers.

    Buffers are cleared when handed out and again when returned. Only buffers
    currently lent out by this pool are taken back, so returning a buffer twice,
    or returning a stale reference after someone else has re-acquired it, is
    ignored. At most ``max_idle`` buffers are retained; extra buffers are
    dropped on release.
    """

    def __init__(self, max_idle: int = 16):
        self.max_idle = max_idle
        self._idle: list[bytearray] = []
        self._lent: set[int] = set()
        self._lock = threading.Lock()

    def acquire(self) -> bytearray:
        with self._lock:
            buffer = self._idle.pop() if self._idle else bytearray()
            self._lent.add(id(buffer))
        buffer.clear()
        return buffer

    def release(self, buffer: bytearray) -> None:
        with self._lock:
            if id(buffer) not in self._lent:
                logger.debug("Ignoring release of a buffer that is not lent out")
                return
            self._lent.discard(id(buffer))
            buffer.clear()
            if len(self._idle) < self.max_idle:
                self._idle.append(buffer)

    @contextmanager
    def borrow(self) -> Iterator[bytearray]:
        """Acquire a buffer for the duration of a ``with`` block."""
        buffer = self.acquire()
        try:
            yield buffer
        finally:
            self.release(buffer)

    @property
    def idle_count(self) -> int:
        with self._lock:
            return len(self._idle)

    @property
    def lent_count(self) -> int:
        with self._lock:
            return len(self._lent)
