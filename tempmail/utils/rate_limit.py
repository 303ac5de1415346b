"""
Per-IP fixed-window rate limiting.

Limiters live on app.state.limiters (built from Settings in main.py)
and are applied to routes with Depends(rate_limit("account")).
"""
import time
from typing import Callable, Dict, Tuple

from fastapi import Request

from tempmail.utils.errors import RateLimitError
from tempmail.utils.logger import get_logger

logger = get_logger(__name__)


class FixedWindowLimiter:
    """
    Counts requests per client key inside a fixed time window.

    Usage:
        limiter = FixedWindowLimiter("account", limit=5, window_seconds=3600)
        if not limiter.hit("203.0.113.7"):
            raise RateLimitError(limiter.message)
    """

    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: float,
        message: str = "Too many requests. Please wait a moment.",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        # key -> (window start, count)
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._pruned_at = clock()

    def __len__(self) -> int:
        return len(self._windows)

    def hit(self, key: str) -> bool:
        """Record one request. Returns False when the key is over the limit."""
        now = self._clock()
        if now - self._pruned_at >= self.window_seconds:
            self._prune(now)

        start, count = self._windows.get(key, (now, 0))
        if now - start >= self.window_seconds:
            start, count = now, 0

        count += 1
        self._windows[key] = (start, count)
        return count <= self.limit

    def _prune(self, now: float) -> None:
        # Runs at most once per window
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]
        self._pruned_at = now
        if expired:
            logger.debug(f"Pruned {len(expired)} expired '{self.name}' window(s)")


def build_limiters(settings) -> Dict[str, FixedWindowLimiter]:
    """Create the general, account and message limiters from settings."""
    return {
        "general": FixedWindowLimiter(
            "general",
            settings.general_rate_limit,
            settings.general_rate_window_seconds,
            "Too many requests from this IP, please try again after 15 minutes",
        ),
        "account": FixedWindowLimiter(
            "account",
            settings.account_rate_limit,
            settings.account_rate_window_seconds,
            "Too many accounts created from this IP, please try again after an hour",
        ),
        "message": FixedWindowLimiter(
            "message",
            settings.message_rate_limit,
            settings.message_rate_window_seconds,
            "Too many message requests, please slow down",
        ),
    }


def rate_limit(name: str):
    """
    FastAPI dependency enforcing the named limiter for the caller's IP.

    Does nothing when app.state.limiters is empty (rate limiting off).
    """
    async def dependency(request: Request) -> None:
        limiter = request.app.state.limiters.get(name)
        if limiter is None:
            return

        client_ip = request.client.host if request.client else "unknown"
        if not limiter.hit(client_ip):
            logger.warning(f"Rate limit '{name}' exceeded for {client_ip}")
            raise RateLimitError(limiter.message)

    return dependency
