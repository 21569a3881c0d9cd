"""Per-(client, endpoint) request counting.

Each key owns a fixed window opened by its first request.  Requests inside
the window count towards the ceiling; the first request after the window
has elapsed opens a fresh one and the old count is dropped.

The limiter is an object handed to the services that need it, so tests get
an isolated table and a deployment can swap in a shared backend that
implements the same ``check`` / ``reset`` contract.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol


@dataclass(frozen=True)
class RateLimitConfig:
    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime


@dataclass
class RateLimitEntry:
    count: int
    window_start: float  # epoch milliseconds
    window_ms: int

    def is_stale(self, now_ms: float) -> bool:
        return now_ms > self.window_start + self.window_ms

    @property
    def reset_ms(self) -> float:
        return self.window_start + self.window_ms


class RateLimitStore(Protocol):
    def check(
        self, client_key: str, endpoint: str, config: RateLimitConfig,
    ) -> RateLimitResult: ...

    def reset(self, client_key: str, endpoint: Optional[str] = None) -> None: ...


def _to_datetime(ms: float) -> datetime:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def _wall_clock_ms() -> float:
    return time.time() * 1000.0


class InMemoryRateLimiter:
    """Process-local rate limit table.

    Keys are guarded by a fixed set of striped locks. A key always maps to
    the same lock, so lock memory stays bounded however many clients show up.
    """

    def __init__(
        self,
        default_config: RateLimitConfig | None = None,
        clock: Callable[[], float] = _wall_clock_ms,
        lock_stripes: int = 64,
    ):
        self.default_config = default_config or RateLimitConfig(200, 60_000)
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._locks = [threading.Lock() for _ in range(max(1, lock_stripes))]

    @staticmethod
    def _key(client_key: str, endpoint: str) -> str:
        return f"{client_key}:{endpoint}"

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def check(
        self,
        client_key: str,
        endpoint: str,
        config: RateLimitConfig | None = None,
    ) -> RateLimitResult:
        """Count one request and report whether it is allowed."""
        cfg = config or self.default_config
        key = self._key(client_key, endpoint)

        with self._lock_for(key):
            now = self._clock()
            entry = self._entries.get(key)

            if entry is None or entry.is_stale(now):
                entry = RateLimitEntry(count=1, window_start=now, window_ms=cfg.window_ms)
                self._entries[key] = entry
                return RateLimitResult(
                    allowed=True,
                    remaining=max(0, cfg.max_requests - 1),
                    reset_at=_to_datetime(entry.reset_ms),
                )

            if entry.count >= cfg.max_requests:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=_to_datetime(entry.reset_ms),
                )

            entry.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=cfg.max_requests - entry.count,
                reset_at=_to_datetime(entry.reset_ms),
            )

    def info(
        self,
        client_key: str,
        endpoint: str,
        config: RateLimitConfig | None = None,
    ) -> RateLimitResult | None:
        """Peek at a key without counting a request. None if no live window."""
        cfg = config or self.default_config
        entry = self._entries.get(self._key(client_key, endpoint))
        if entry is None or entry.is_stale(self._clock()):
            return None
        return RateLimitResult(
            allowed=entry.count < cfg.max_requests,
            remaining=max(0, cfg.max_requests - entry.count),
            reset_at=_to_datetime(entry.reset_ms),
        )

    def reset(self, client_key: str, endpoint: Optional[str] = None) -> None:
        """Forget one endpoint for a client, or every endpoint when omitted."""
        if endpoint is not None:
            key = self._key(client_key, endpoint)
            with self._lock_for(key):
                self._entries.pop(key, None)
            return

        prefix = f"{client_key}:"
        for key in [k for k in list(self._entries) if k.startswith(prefix)]:
            with self._lock_for(key):
                self._entries.pop(key, None)

    def clear(self) -> None:
        for key in list(self._entries):
            with self._lock_for(key):
                self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop stale windows. Returns the number of entries removed."""
        removed = 0
        for key in list(self._entries):
            with self._lock_for(key):
                entry = self._entries.get(key)
                if entry is not None and entry.is_stale(self._clock()):
                    del self._entries[key]
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._entries)
