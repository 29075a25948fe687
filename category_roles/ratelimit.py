import time
from typing import Callable, Dict, Hashable, List, Optional


class RateLimiter:
    """Allows `calls` actions per `window` seconds for each key.

    State lives in memory only; restarting the bot resets every cooldown.
    Keys whose hits have all expired are swept at most once per window.
    """

    def __init__(self, calls: int = 1, window: float = 600.0, clock: Optional[Callable[[], float]] = None):
        if calls < 1:
            raise ValueError("calls must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self.calls = calls
        self.window = float(window)
        self._clock = clock or time.monotonic
        self._hits: Dict[Hashable, List[float]] = {}
        self._last_sweep = self._clock()

    @property
    def tracked(self) -> int:
        """Number of keys currently holding hits."""
        return len(self._hits)

    def allow(self, key: Hashable) -> bool:
        now = self._clock()
        self._sweep(now)
        hits = [t for t in self._hits.get(key, []) if now - t < self.window]
        if len(hits) >= self.calls:
            self._hits[key] = hits
            return False
        hits.append(now)
        self._hits[key] = hits
        return True

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window:
            return
        self._last_sweep = now
        # hits are appended in order, so the last one is the newest
        expired = [key for key, hits in self._hits.items() if not hits or now - hits[-1] >= self.window]
        for key in expired:
            del self._hits[key]

    def remaining(self, key: Hashable) -> float:
        hits = self._hits.get(key)
        if not hits or len(hits) < self.calls:
            return 0.0
        return max(0.0, self.window - (self._clock() - hits[0]))

    def clear(self) -> None:
        self._hits.clear()
