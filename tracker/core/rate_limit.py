"""Per-client fixed-window rate limiting."""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from .exceptions import RateLimitExceededError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitDecision:
    """Outcome of a rate limit check."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(int(self.reset_at - now + 0.999), 1)


class RateLimiter:
    """Allows ``max_requests`` per client in each ``window_seconds`` window."""

    def __init__(
        self,
        max_requests: int = 60,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, float]] = {}

    def check(self, client_id: str) -> RateLimitDecision:
        """Count one request for the client and report whether it is allowed."""
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(client_id, (0, now + self.window_seconds))
            if now >= reset_at:
                count, reset_at = 0, now + self.window_seconds

            if count >= self.max_requests:
                return RateLimitDecision(False, self.max_requests, 0, reset_at)

            count += 1
            self._windows[client_id] = (count, reset_at)
            self._evict_expired(now)
            return RateLimitDecision(True, self.max_requests, self.max_requests - count, reset_at)

    def enforce(self, client_id: str) -> RateLimitDecision:
        """
        Like ``check`` but raises when the client is over its allowance.

        Raises:
            RateLimitExceededError: If the request is not allowed
        """
        decision = self.check(client_id)
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for client {client_id}")
            raise RateLimitExceededError(
                client_id,
                limit=decision.limit,
                retry_after=decision.retry_after(self._clock())
            )
        return decision

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _evict_expired(self, now: float) -> None:
        if len(self._windows) < 1024:
            return
        expired = [client for client, (_, reset_at) in self._windows.items() if now >= reset_at]
        for client in expired:
            del self._windows[client]
