# servicepoint/core/rate_limit.py
"""
Sliding-window request counting.

The store is process-local and forgets everything on restart. It throttles
abuse; it is not a security boundary. A deployment with several workers
would swap in a shared store implementing the same interface.
"""
import logging
import threading
import time
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class RateLimitStore:
    def hit(self, key: str, window: float, limit: int, now: Optional[float] = None) -> Tuple[bool, int]:
        """Record a request for `key`.

        Returns (allowed, retry_after_seconds). Rejected requests are not recorded.
        """
        raise NotImplementedError

    def prune(self, max_age: float, now: Optional[float] = None) -> int:
        raise NotImplementedError

    def reset(self) -> None:
        raise NotImplementedError


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self):
        self._requests: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def hit(self, key, window, limit, now=None):
        now = now if now is not None else time.time()
        window_start = now - window

        with self._lock:
            valid = [t for t in self._requests.get(key, []) if t > window_start]
            if len(valid) >= limit:
                self._requests[key] = valid
                retry_after = int(valid[0] + window - now) + 1
                return False, max(retry_after, 1)
            valid.append(now)
            self._requests[key] = valid
            return True, 0

    def prune(self, max_age, now=None):
        now = now if now is not None else time.time()
        cutoff = now - max_age
        removed = 0
        with self._lock:
            for key in list(self._requests):
                valid = [t for t in self._requests[key] if t > cutoff]
                if valid:
                    self._requests[key] = valid
                else:
                    del self._requests[key]
                    removed += 1
        return removed

    def reset(self):
        with self._lock:
            self._requests.clear()

    def __len__(self):
        with self._lock:
            return len(self._requests)


class RateLimitPruner:
    """Periodically drops stale keys from a store. Must be started and stopped explicitly."""

    def __init__(self, store: RateLimitStore, interval: float = 15 * 60, max_age: float = 60 * 60):
        self.store = store
        self.interval = interval
        self.max_age = max_age
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="rate-limit-pruner", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            removed = self.store.prune(self.max_age)
            if removed:
                logger.debug("Pruned %d idle rate-limit keys", removed)
