from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from careledger.core.rate_limiter import SlidingWindowLimiter  # noqa: E402


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_window_slides_per_key():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(clock=clock)

    assert limiter.hit("a", 2, 60) == 0
    clock.now += 10
    assert limiter.hit("a", 2, 60) == 0
    assert limiter.hit("a", 2, 60) == 50
    assert limiter.hit("b", 2, 60) == 0

    clock.now += 50
    assert limiter.hit("a", 2, 60) == 0
    assert limiter.hit("a", 2, 60) == 10

    limiter.reset()
    assert limiter.hit("a", 2, 60) == 0
