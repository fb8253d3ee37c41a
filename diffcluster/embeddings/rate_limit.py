"""
Rate limiting for sequential embedding calls.

Embedding requests are issued one at a time; the limiter enforces a fixed
delay between consecutive calls and never before the first one.
"""

import time
from typing import Callable


class FixedDelayRateLimiter:
    """Sleeps a fixed delay before every call except the first."""

    def __init__(self, delay_seconds: float = 2.0, sleep: Callable[[float], None] = time.sleep):
        self.delay_seconds = max(0.0, delay_seconds)
        self._sleep = sleep
        self._calls = 0

    @classmethod
    def from_milliseconds(cls, delay_ms: int, **kwargs) -> 'FixedDelayRateLimiter':
        return cls(delay_ms / 1000.0, **kwargs)

    def wait(self) -> None:
        """Block until the next call is allowed."""
        if self._calls > 0 and self.delay_seconds > 0:
            self._sleep(self.delay_seconds)
        self._calls += 1

    def reset(self) -> None:
        """Forget previous calls so the next wait does not sleep."""
        self._calls = 0

    @property
    def calls(self) -> int:
        return self._calls


class NoDelayRateLimiter(FixedDelayRateLimiter):
    """Rate limiter that never sleeps; for tests and local models."""

    def __init__(self):
        super().__init__(0.0)
