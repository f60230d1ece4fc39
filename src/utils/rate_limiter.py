"""In-memory rate limiting for login, token validation and registration.

Failed attempts are counted per key over a sliding window. Once a key has
used up its attempts it is locked out for a fixed period.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from config import (
    RATE_LIMIT_LOCKOUT_MINUTES,
    RATE_LIMIT_MAX_ATTEMPTS,
    RATE_LIMIT_WINDOW_MINUTES,
)
from core.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Sliding-window attempt counter with lockout.

    Thread-safe; one instance is shared by all requests of a process.
    """

    def __init__(
        self,
        name: str,
        max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS,
        window_seconds: float = RATE_LIMIT_WINDOW_MINUTES * 60,
        lockout_seconds: float = RATE_LIMIT_LOCKOUT_MINUTES * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize RateLimiter.

        Args:
            name: Shown in log messages.
            max_attempts: Attempts allowed per window.
            window_seconds: Length of the sliding window.
            lockout_seconds: How long a key stays locked.
            clock: Monotonic seconds source.
        """
        self.name = name
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._attempts: Dict[str, List[float]] = {}
        self._locked_until: Dict[str, float] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    @staticmethod
    def _normalize(key: str) -> str:
        return (key or "").strip().lower()

    def _prune(self, key: str, now: float) -> List[float]:
        recent = [t for t in self._attempts.get(key, []) if now - t < self.window_seconds]
        if recent:
            self._attempts[key] = recent
        else:
            self._attempts.pop(key, None)
        return recent

    def check(self, key: str) -> Optional[float]:
        """Return the seconds left on the key's lockout, or None if allowed.

        A key that has reached max_attempts inside the window is locked out
        by this call.
        """
        key = self._normalize(key)
        now = self._clock()
        with self._lock:
            locked_until = self._locked_until.get(key)
            if locked_until is not None:
                if locked_until > now:
                    return locked_until - now
                del self._locked_until[key]
                self._attempts.pop(key, None)

            if len(self._prune(key, now)) >= self.max_attempts:
                self._locked_until[key] = now + self.lockout_seconds
                self._attempts.pop(key, None)
                logger.warning("%s: locking out %s for %ss", self.name, key, self.lockout_seconds)
                return self.lockout_seconds
        return None

    def ensure_allowed(self, key: str) -> None:
        """Raise if the key is locked out.

        Raises:
            RateLimitExceededError: With the remaining lockout seconds.
        """
        remaining = self.check(key)
        if remaining is not None:
            raise RateLimitExceededError(retry_after_seconds=remaining)

    def _sweep(self, now: float) -> None:
        """Drop keys whose attempts and lockouts have all expired."""
        for key in list(self._attempts):
            self._prune(key, now)
        for key, locked_until in list(self._locked_until.items()):
            if locked_until <= now:
                del self._locked_until[key]

    def record_attempt(self, key: str) -> None:
        key = self._normalize(key)
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
                self._last_sweep = now
            self._attempts.setdefault(key, []).append(now)

    def tracked_keys(self) -> int:
        """Number of keys holding attempts or a lockout."""
        with self._lock:
            return len(set(self._attempts) | set(self._locked_until))

    def clear(self, key: str) -> None:
        key = self._normalize(key)
        with self._lock:
            self._attempts.pop(key, None)
            self._locked_until.pop(key, None)

    def remaining_attempts(self, key: str) -> int:
        key = self._normalize(key)
        with self._lock:
            used = len(self._prune(key, self._clock()))
        return max(0, self.max_attempts - used)
