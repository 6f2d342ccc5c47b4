"""
Time-based cache for a single loaded value (the catalog snapshot).

Constructed once per process and passed to whoever needs the value; the
clock is injectable so expiry can be tested without sleeping.
"""
import logging
import threading
import time
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class TTLCache(Generic[T]):
    """Holds the result of loader() for ttl_seconds, then reloads on next access."""

    def __init__(
        self,
        loader: Callable[[], T],
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._lock = threading.Lock()
        self._value: Optional[T] = None
        self._loaded_at: Optional[float] = None

    @property
    def loaded_at(self) -> Optional[float]:
        return self._loaded_at

    def is_fresh(self) -> bool:
        if self._loaded_at is None:
            return False
        return (self.clock() - self._loaded_at) < self.ttl_seconds

    def get(self) -> T:
        with self._lock:
            if not self.is_fresh():
                logger.debug("Cache expired or empty, reloading")
                self._value = self.loader()
                self._loaded_at = self.clock()
            return self._value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._loaded_at = None
