from datetime import datetime, timedelta
from threading import Lock

from viewcounter.components.analytics import DefaultTimePort
from viewcounter.config.models import RateLimitConfig
from viewcounter.core.ports.clock import TimePort


class RateLimiter:
    """Sliding-window request limiter keyed by the transient client digest."""

    def __init__(
        self,
        config: RateLimitConfig,
        time_port: TimePort | None = None,
    ):
        self.config = config
        self._time = time_port if time_port is not None else DefaultTimePort()
        self._history: dict[str, list[datetime]] = {}
        self._lock = Lock()
        self._last_sweep: datetime | None = None

    def _cleanup(self, key: str, window: int) -> None:
        cutoff = self._time.now_utc() - timedelta(seconds=window)
        if key in self._history:
            self._history[key] = [t for t in self._history[key] if t > cutoff]
            if not self._history[key]:
                del self._history[key]

    def _sweep(self, window: int) -> None:
        """Drop every key with no attempt inside the window. Caller holds the lock."""
        now = self._time.now_utc()
        if self._last_sweep is not None and now - self._last_sweep < timedelta(seconds=window):
            return
        cutoff = now - timedelta(seconds=window)
        stale = [k for k, times in self._history.items() if not times or times[-1] <= cutoff]
        for key in stale:
            del self._history[key]
        self._last_sweep = now

    def allow_request(self, key: str, window: int, limit: int) -> bool:
        """
        Check if request is allowed.
        If allowed, records the attempt and returns True.
        If denied, returns False.

        Keys of clients that stopped calling are swept at most once per window.
        """
        if limit <= 0:
            return False

        with self._lock:
            self._sweep(window)
            self._cleanup(key, window)
            current_count = len(self._history.get(key, []))

            if current_count >= limit:
                return False

            self._history.setdefault(key, []).append(self._time.now_utc())
            return True

    def check_client(self, client_key: str) -> bool:
        return self.allow_request(
            f"client:{client_key}", self.config.window_seconds, self.config.max_requests
        )

    def retry_after(self) -> int:
        return self.config.window_seconds

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._history)
