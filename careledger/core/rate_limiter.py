"""
Throttling for the signature endpoint.

Signatures arrive from a shared tablet at the front desk as well as from the
member portal, so hits are counted per client address and acting member over
a sliding window configured by SIGN_RATE_LIMIT / SIGN_RATE_WINDOW_SECONDS.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict

from fastapi import HTTPException, Request

from .config import get_settings
from .context import OperatorContext


class SlidingWindowLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def hit(self, key: str, limit: int, window_seconds: float) -> float:
        """Record a hit. Returns 0 when allowed, else seconds until the oldest hit expires."""
        now = self._clock()
        with self._lock:
            window = self._hits.setdefault(key, deque())
            while window and window[0] <= now - window_seconds:
                window.popleft()
            if len(window) >= limit:
                return window[0] + window_seconds - now
            window.append(now)
            return 0.0

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


_limiter = SlidingWindowLimiter()


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def throttle_signatures(request: Request, ctx: OperatorContext) -> None:
    settings = get_settings()
    key = f"sign:{_client_ip(request)}:{ctx.member_id or ctx.name}"
    retry_after = _limiter.hit(key, settings.sign_rate_limit, settings.sign_rate_window_seconds)
    if retry_after > 0:
        raise HTTPException(
            429,
            "서명 요청이 너무 많습니다. 잠시 후 다시 시도해 주세요.",
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )


def reset_limits() -> None:
    _limiter.reset()
