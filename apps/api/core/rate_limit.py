"""In-process sliding-window rate limiter.

Guards expensive operations (statement imports) per key before any work
starts. State lives in this process only; each API replica counts on its
own.
"""

import time
from collections import defaultdict, deque

from apps.api.core.errors import RateLimitError

_request_windows: dict[str, deque[float]] = defaultdict(deque)


def enforce_rate_limit(key: str, limit: int, window_seconds: int) -> None:
    """Record one hit for ``key``; raise RateLimitError once ``limit`` is reached."""
    window = _request_windows[key]
    now = time.monotonic()
    cutoff = now - window_seconds

    while window and window[0] <= cutoff:
        window.popleft()

    if len(window) >= limit:
        retry_after = max(1, int(window[0] + window_seconds - now) + 1)
        raise RateLimitError(
            "Too many requests, please try again later",
            retry_after=retry_after,
        )

    window.append(now)


def reset_rate_limits() -> None:
    """Forget every recorded hit (test helper)."""
    _request_windows.clear()
