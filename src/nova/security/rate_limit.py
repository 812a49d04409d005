"""Fixed-window throttling of build turns per project.

``NOVA_CHAT_LIMIT`` turns are allowed per ``NOVA_CHAT_WINDOW_SEC`` window.
Counters live in process memory. Throttling is off under pytest unless
``NOVA_RATE_LIMIT_DISABLED`` is explicitly set to a false value.
"""

from __future__ import annotations

import math
import os
import time
from threading import Lock
from typing import Callable, Dict, Tuple

DEFAULT_CHAT_LIMIT = 30
DEFAULT_CHAT_WINDOW_SECONDS = 60


class RateLimitExceeded(Exception):
    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__("Rate limit exceeded")
        self.retry_after_seconds = retry_after_seconds


class FixedWindowLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        # identifier -> (count, window end)
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = Lock()

    def hit(self, identifier: str, limit: int, window_seconds: int) -> None:
        """Count one action for ``identifier`` or raise RateLimitExceeded."""
        now = self._clock()
        with self._lock:
            count, window_end = self._windows.get(identifier, (0, 0.0))
            if window_end <= now:
                self._windows[identifier] = (1, now + window_seconds)
                return
            if count >= limit:
                raise RateLimitExceeded(max(1, math.ceil(window_end - now)))
            self._windows[identifier] = (count + 1, window_end)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_chat_limiter = FixedWindowLimiter()


def _positive_int(name: str, default: int) -> int:
    try:
        value = int(os.getenv(name, ""))
    except ValueError:
        return default
    return value if value > 0 else default


def _rate_limiting_disabled() -> bool:
    flag = (os.getenv("NOVA_RATE_LIMIT_DISABLED") or "").lower()
    if flag in {"1", "true", "yes", "on"}:
        return True
    if flag in {"0", "false", "no", "off"}:
        return False
    return bool(os.getenv("PYTEST_CURRENT_TEST"))


def rate_limit_chat_turn(project_id: str) -> None:
    if _rate_limiting_disabled():
        return
    _chat_limiter.hit(
        project_id,
        _positive_int("NOVA_CHAT_LIMIT", DEFAULT_CHAT_LIMIT),
        _positive_int("NOVA_CHAT_WINDOW_SEC", DEFAULT_CHAT_WINDOW_SECONDS),
    )


def reset_rate_limits() -> None:
    _chat_limiter.reset()
