"""Fixed-window request limits per client and route.

Counters live in process memory, so each worker enforces its own window.
The client is identified by the first ``X-Forwarded-For`` hop, then
``X-Real-IP``, then the socket peer.
"""

import math
import threading
import time
from collections.abc import Callable

from fastapi import Request

from payments.config import get_settings
from payments.errors import RateLimitedError
from payments.utils.logging import get_logger

logger = get_logger(__name__)


class FixedWindowLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: float) -> float | None:
        """Count one request for ``key``; return seconds to wait when over ``limit``."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            count, resets_at = self._windows.get(key, (0, now + window_seconds))
            count += 1
            self._windows[key] = (count, resets_at)
            if count > limit:
                return resets_at - now
            return None

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, resets_at) in self._windows.items() if resets_at <= now]
        for key in expired:
            del self._windows[key]


_limiter = FixedWindowLimiter()


def get_limiter() -> FixedWindowLimiter:
    return _limiter


def client_identifier(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def limit_order_placement(request: Request) -> None:
    """Route dependency for ``POST /orders``."""
    settings = get_settings()
    client = client_identifier(request)
    wait = _limiter.hit(
        f"{request.url.path}:{client}",
        limit=settings.order_rate_limit,
        window_seconds=settings.rate_limit_window_seconds,
    )
    if wait is not None:
        logger.warning("rate_limited", path=request.url.path, client=client)
        raise RateLimitedError(retry_after=max(1, math.ceil(wait)))
