import threading
import time


class QuestionCache:
    """Process-wide snapshot of the active question corpus.

    Entries are ``(template, usage_count)`` pairs. The snapshot is rebuilt
    lazily after :meth:`invalidate` or once ``ttl_sec`` has elapsed
    (0 keeps it until invalidated).
    """

    def __init__(self, ttl_sec=0, clock=time.monotonic):
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._entries = None
        self._loaded_at = 0.0

    def _stale(self) -> bool:
        if self._entries is None:
            return True
        return bool(self.ttl_sec) and self._clock() - self._loaded_at >= self.ttl_sec

    def get(self, loader):
        with self._lock:
            if self._stale():
                self._entries = list(loader())
                self._loaded_at = self._clock()
            return list(self._entries)

    def invalidate(self) -> None:
        with self._lock:
            self._entries = None
