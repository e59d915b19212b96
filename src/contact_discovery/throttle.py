"""Per-root-domain politeness throttle and per-target time budgets."""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import Lock
from urllib.parse import urlparse

import tldextract

from .errors import DeadlineExceeded

ClockFn = Callable[[], float]
SleepFn = Callable[[float], None]

# Bundled public-suffix snapshot only; never fetch the list over the network.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


def host_from_url(url: str) -> str:
    """Return the lowercase hostname of a URL or bare domain."""
    value = url.strip()
    if "://" not in value:
        value = f"//{value}"
    return (urlparse(value).hostname or "").lower()


def root_domain(url_or_host: str) -> str:
    """Collapse a host to its registrable domain (shop.example.co.uk -> example.co.uk)."""
    host = host_from_url(url_or_host)
    if not host:
        return ""
    parts = _EXTRACT(host)
    if parts.domain and parts.suffix:
        return f"{parts.domain}.{parts.suffix}"
    return host


class DomainThrottleState:
    """Last-request timestamps keyed by root domain.

    Each key has its own lock, held while a caller waits for its turn, so two
    workers never hit the same root domain inside one interval while requests
    to different root domains proceed independently.
    """

    def __init__(
        self,
        interval: float,
        *,
        clock: ClockFn = time.monotonic,
        sleep_fn: SleepFn = time.sleep,
    ) -> None:
        self._interval = interval
        self._clock = clock
        self._sleep = sleep_fn
        self._last_request: dict[str, float] = {}
        self._key_locks: dict[str, Lock] = {}
        self._registry_lock = Lock()

    def _lock_for(self, key: str) -> Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = Lock()
                self._key_locks[key] = lock
            return lock

    def last_request(self, key: str) -> float | None:
        with self._registry_lock:
            return self._last_request.get(key)

    def wait_turn(self, url: str) -> float:
        """Block until the root domain of ``url`` may be hit again; return seconds waited."""
        key = root_domain(url) or url
        with self._lock_for(key):
            waited = 0.0
            with self._registry_lock:
                last = self._last_request.get(key)
            if last is not None:
                remaining = self._interval - (self._clock() - last)
                if remaining > 0:
                    self._sleep(remaining)
                    waited = remaining
            with self._registry_lock:
                self._last_request[key] = self._clock()
            return waited

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._last_request)


class Deadline:
    """Wall-clock budget for one target."""

    def __init__(self, seconds: float, *, clock: ClockFn = time.monotonic) -> None:
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, step: str = "") -> None:
        if self.expired:
            suffix = f" during {step}" if step else ""
            raise DeadlineExceeded(f"per-target deadline exceeded{suffix}")
