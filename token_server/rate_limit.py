"""
Rate limiting for /oauth/*. In-memory sliding window per key (client IP).
Mitigates credential brute force against the token endpoint.
"""
import math
import threading
import time
from collections import deque

from fastapi import HTTPException, Request

from token_server.audit import get_client_ip
from token_server.config import RATE_LIMIT_TOKEN_PER_MINUTE

_windows: dict[str, deque[float]] = {}
_lock = threading.Lock()
_WINDOW_SECONDS = 60


def check_and_consume(
    key: str,
    limit: int,
    window_seconds: int = _WINDOW_SECONDS,
) -> tuple[bool, int | None]:
    """
    Record one request for key unless it already has `limit` requests in the last window.
    Returns (allowed, retry_after_seconds); retry_after is >= 1 when not allowed.
    A limit of 0 or less disables limiting.
    """
    if limit <= 0:
        return True, None
    now = time.monotonic()
    with _lock:
        window = _windows.setdefault(key, deque())
        while window and window[0] <= now - window_seconds:
            window.popleft()
        if len(window) >= limit:
            return False, max(1, math.ceil(window_seconds - (now - window[0])))
        window.append(now)
        return True, None


def reset() -> None:
    with _lock:
        _windows.clear()


def enforce_rate_limit(request: Request) -> None:
    """Dependency for the /oauth router. Limit comes from app.state, falling back to config."""
    limit = getattr(request.app.state, "rate_limit_per_minute", RATE_LIMIT_TOKEN_PER_MINUTE)
    key = f"oauth:{get_client_ip(request) or 'unknown'}"
    allowed, retry_after = check_and_consume(key, limit)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail={"error": "rate_limited", "error_description": "Too many requests"},
            headers={"Retry-After": str(retry_after)},
        )
