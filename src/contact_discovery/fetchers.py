"""Politeness-aware HTTP fetching."""

from __future__ import annotations

import logging
import random
import time
import urllib.robotparser
from collections.abc import Callable
from threading import Lock
from urllib.parse import urlparse, urlunparse

from requests import Response, Session
from requests.adapters import HTTPAdapter
from requests.exceptions import (
    ConnectionError as RequestsConnectionError,
)
from requests.exceptions import (
    InvalidURL,
    MissingSchema,
    RequestException,
    Timeout,
    TooManyRedirects,
)

from .models import FetchResult, TimeBudget
from .throttle import DomainThrottleState
from .validation import is_supported_url

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36 Edg/124.0.2478.67",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1",
)
BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Cache-Control": "max-age=0",
}
TEXT_CONTENT_TYPES = ("text/", "application/xhtml", "application/xml", "application/ld+json")
DNS_FAILURE_MARKERS = (
    "NameResolutionError",
    "Name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "Temporary failure in name resolution",
    "No address associated with hostname",
)
JITTER_RATIO = 0.3

SleepFn = Callable[[float], None]


class RobotsPolicy:
    """robots.txt cache and allow checks.

    Each origin has its own load lock, so a slow robots.txt on one host never
    holds up checks for another. Loads go through the shared throttle.
    """

    def __init__(
        self,
        *,
        session: Session,
        timeout: float,
        throttle: DomainThrottleState | None = None,
        user_agent: str = "*",
        rng: random.Random | None = None,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._throttle = throttle
        self._user_agent = user_agent
        self._rng = rng or random.Random()
        self._cache: dict[str, urllib.robotparser.RobotFileParser | None] = {}
        self._origin_locks: dict[str, Lock] = {}
        self._registry_lock = Lock()

    def _lock_for(self, origin: str) -> Lock:
        with self._registry_lock:
            lock = self._origin_locks.get(origin)
            if lock is None:
                lock = Lock()
                self._origin_locks[origin] = lock
            return lock

    def _load(
        self, origin: str, deadline: TimeBudget | None
    ) -> urllib.robotparser.RobotFileParser | None:
        url = origin + "/robots.txt"
        timeout = self._timeout
        if deadline is not None:
            timeout = max(0.1, min(timeout, deadline.remaining()))
        if self._throttle is not None:
            self._throttle.wait_turn(url)
        try:
            response = self._session.get(
                url,
                headers={"User-Agent": self._rng.choice(USER_AGENTS)},
                timeout=timeout,
            )
        except RequestException:
            return None
        if response.status_code >= 400:
            return None
        parser = urllib.robotparser.RobotFileParser()
        parser.parse(str(response.text).splitlines())
        return parser

    def _parser_for(
        self, origin: str, deadline: TimeBudget | None
    ) -> urllib.robotparser.RobotFileParser | None:
        with self._lock_for(origin):
            with self._registry_lock:
                if origin in self._cache:
                    return self._cache[origin]
            parser = self._load(origin, deadline)
            with self._registry_lock:
                self._cache[origin] = parser
            return parser

    def allowed(self, url: str, *, deadline: TimeBudget | None = None) -> bool:
        """Return True if robots policy allows this URL."""
        if not is_supported_url(url):
            return False
        parsed = urlparse(url)
        parser = self._parser_for(f"{parsed.scheme}://{parsed.netloc}", deadline)
        if parser is None:
            return True
        return parser.can_fetch(self._user_agent, url)


def make_session(pool_size: int, max_redirects: int) -> Session:
    """Create a requests session sized for the worker pool."""
    session = Session()
    session.headers.update(BROWSER_HEADERS)
    session.max_redirects = max_redirects
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def root_path_url(url: str) -> str:
    """Return the origin of a URL with an empty path."""
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, "/", "", "", ""))


def _is_dns_failure(exc: Exception) -> bool:
    text = repr(exc)
    return any(marker in text for marker in DNS_FAILURE_MARKERS)


def _is_text_response(response: Response) -> bool:
    content_type = str(response.headers.get("Content-Type", "")).lower()
    return not content_type or content_type.startswith(TEXT_CONTENT_TYPES)


class PoliteFetcher:
    """Requests-based fetcher with per-domain throttling, retries and UA rotation."""

    def __init__(
        self,
        *,
        session: Session,
        throttle: DomainThrottleState,
        timeout: float,
        max_retries: int,
        backoff_base: float,
        backoff_max: float,
        logger: logging.Logger,
        robots_policy: RobotsPolicy | None = None,
        sleep_fn: SleepFn = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._session = session
        self._throttle = throttle
        self._timeout = timeout
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._logger = logger
        self._robots_policy = robots_policy
        self._sleep = sleep_fn
        self._rng = rng or random.Random()

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with up to 30% jitter, capped at the max delay."""
        delay = self._backoff_base * (2**attempt) * (1 + self._rng.uniform(0, JITTER_RATIO))
        return min(self._backoff_max, delay)

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self._rng.choice(USER_AGENTS)}

    def _timeout_for(self, deadline: TimeBudget | None) -> float:
        if deadline is None:
            return self._timeout
        return max(0.1, min(self._timeout, deadline.remaining()))

    def _request(
        self, method: str, url: str, deadline: TimeBudget | None, **kwargs: object
    ) -> Response:
        self._throttle.wait_turn(url)
        return self._session.request(
            method,
            url,
            headers=self._headers(),
            timeout=self._timeout_for(deadline),
            allow_redirects=True,
            **kwargs,
        )

    def _skip_reason(self, url: str, deadline: TimeBudget | None) -> str:
        if not is_supported_url(url):
            self._logger.debug("Skipping unsupported URL: %s", url)
            return "unsupported url"
        if deadline is not None and deadline.expired:
            return "deadline exceeded"
        if self._robots_policy is not None and not self._robots_policy.allowed(
            url, deadline=deadline
        ):
            self._logger.info("Skipping due to robots.txt: %s", url)
            return "blocked by robots.txt"
        return ""

    def fetch(
        self,
        url: str,
        max_retries: int | None = None,
        *,
        deadline: TimeBudget | None = None,
        root_fallback: bool = True,
    ) -> FetchResult:
        """Fetch a page; never raises, failures come back as ``ok=False``."""
        skip = self._skip_reason(url, deadline)
        if skip:
            return FetchResult("", False, None, skip)

        retries = self._max_retries if max_retries is None else max_retries
        status: int | None = None
        reason = ""
        for attempt in range(retries + 1):
            if deadline is not None and deadline.expired:
                return FetchResult("", False, status, "deadline exceeded")
            try:
                response = self._request("GET", url, deadline)
            except (Timeout, RequestsConnectionError) as exc:
                if _is_dns_failure(exc):
                    self._logger.debug("DNS failure for %s: %s", url, exc)
                    return FetchResult("", False, None, "dns failure")
                reason = "timeout" if isinstance(exc, Timeout) else "connection error"
                self._logger.debug("Transient fetch failure for %s: %s", url, exc)
            except TooManyRedirects:
                return FetchResult("", False, None, "too many redirects")
            except (InvalidURL, MissingSchema) as exc:
                self._logger.debug("Invalid URL %s: %s", url, exc)
                return FetchResult("", False, None, "invalid url")
            except RequestException as exc:
                self._logger.debug("Requests fetch failed for %s: %s", url, exc)
                return FetchResult("", False, None, f"request error: {type(exc).__name__}")
            else:
                status = response.status_code
                if status < 400:
                    if not _is_text_response(response):
                        return FetchResult("", False, status, "non-text content")
                    return FetchResult(str(response.text), True, status)
                if status == 404 and root_fallback and root_path_url(url) != url:
                    self._logger.debug("404 for %s, trying domain root once", url)
                    return self.fetch(
                        root_path_url(url), 0, deadline=deadline, root_fallback=False
                    )
                if status != 429 and status < 500:
                    return FetchResult("", False, status, f"http {status}")
                reason = f"http {status}"

            if attempt < retries:
                delay = self.backoff_delay(attempt)
                if deadline is not None:
                    delay = min(delay, deadline.remaining())
                self._sleep(delay)

        self._logger.debug("Giving up on %s after %d attempts: %s", url, retries + 1, reason)
        return FetchResult("", False, status, f"retries exhausted: {reason}")

    def exists(self, url: str, *, deadline: TimeBudget | None = None) -> bool:
        """Cheap HEAD probe; 2xx and 3xx count as present."""
        if self._skip_reason(url, deadline):
            return False
        try:
            response = self._request("HEAD", url, deadline)
            if response.status_code in (405, 501):
                response = self._request("GET", url, deadline, stream=True)
                response.close()
        except RequestException as exc:
            self._logger.debug("HEAD probe failed for %s: %s", url, exc)
            return False
        return 200 <= response.status_code < 400
