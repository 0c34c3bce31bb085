"""HTTP infrastructure for the lookup programs: rate limiting, caching, retries."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from typing import Any

import httpx

DEFAULT_USER_AGENT = "ReferenceVerifier/0.1 (mailto:ref-verifier@example.com)"


class RateLimiter:
    """Thread-safe sliding-window rate limiter."""

    def __init__(self, req_per_min: int) -> None:
        self.req_per_min = max(req_per_min, 1)
        self.lock = threading.Lock()
        self.timestamps: list[float] = []

    def wait(self) -> None:
        """Block until a request can be made within the rate limit."""
        with self.lock:
            now = time.time()
            window = 60.0
            self.timestamps = [t for t in self.timestamps if now - t < window]
            if len(self.timestamps) >= self.req_per_min:
                sleep_for = window - (now - min(self.timestamps)) + 0.01
                if sleep_for > 0:
                    time.sleep(sleep_for)
                    now = time.time()
                    self.timestamps = [t for t in self.timestamps if now - t < window]
            self.timestamps.append(time.time())


class RateLimiterRegistry:
    """Per-service rate limiters."""

    DEFAULT_LIMITS = {
        "crossref": 50,  # Crossref polite pool
        "semanticscholar": 100,  # 1000 with API key
        "arxiv": 20,  # arXiv asks for one request every 3 seconds
        "openlibrary": 30,
    }

    def __init__(self, limits: dict[str, int] | None = None) -> None:
        self._limits = {**self.DEFAULT_LIMITS, **(limits or {})}
        self._limiters: dict[str, RateLimiter] = {}
        self._lock = threading.Lock()

    def get(self, service: str) -> RateLimiter:
        """Get or create the rate limiter for a service."""
        with self._lock:
            if service not in self._limiters:
                self._limiters[service] = RateLimiter(self._limits.get(service, 30))
            return self._limiters[service]

    def wait(self, service: str) -> None:
        self.get(service).wait()


class DiskCache:
    """Thread-safe on-disk JSON cache for API responses; disabled when path is None."""

    def __init__(self, path: str | None) -> None:
        self.path = path
        self.lock = threading.Lock()
        self.data: dict[str, Any] = {}
        if path and os.path.exists(path):
            try:
                with open(path, encoding="utf-8") as f:
                    self.data = json.load(f)
            except (OSError, json.JSONDecodeError):
                self.data = {}

    def get(self, key: str) -> Any | None:
        if not self.path:
            return None
        with self.lock:
            return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        if not self.path:
            return
        with self.lock:
            self.data[key] = value
            directory = os.path.dirname(os.path.abspath(self.path))
            tmp = tempfile.NamedTemporaryFile(
                "w", delete=False, encoding="utf-8", suffix=".json", prefix=".tmp_cache_", dir=directory
            )
            try:
                json.dump(self.data, tmp)
                tmp.flush()
                os.fsync(tmp.fileno())
            finally:
                tmp.close()
            os.replace(tmp.name, self.path)


class HttpClient:
    """HTTP client with caching, per-service rate limiting and retry logic."""

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        rate_limiter: RateLimiterRegistry | None = None,
        cache: DiskCache | None = None,
        s2_api_key: str | None = None,
        max_retries: int = 3,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize HTTP client.

        Args:
            timeout: Request timeout in seconds
            user_agent: User-Agent header value
            rate_limiter: Per-service rate limiters
            cache: Optional DiskCache for JSON responses
            s2_api_key: Optional Semantic Scholar API key
            max_retries: Attempts per request before giving up
            logger: Logger for retry diagnostics
        """
        self.client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": user_agent},
            follow_redirects=True,
        )
        self.rate_limiter = rate_limiter or RateLimiterRegistry()
        self.cache = cache
        self.s2_api_key = s2_api_key
        self.max_retries = max(max_retries, 1)
        self.logger = logger or logging.getLogger("ref_verifier.lookups.httpclient")

    def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
        service: str | None = None,
    ) -> httpx.Response:
        """Make an HTTP request with caching and retries.

        Raises:
            RuntimeError: If every attempt failed with a network error or retryable status.
        """
        cache_key = None
        if self.cache:
            cache_key = json.dumps({"m": method, "u": url, "p": params, "a": accept}, sort_keys=True)
            cached = self.cache.get(cache_key)
            if cached is not None:
                return httpx.Response(
                    200,
                    content=json.dumps(cached).encode("utf-8"),
                    headers={"Content-Type": "application/json", "X-From-Cache": "1"},
                )

        backoff = 1.0
        limiter = self.rate_limiter.get(service or "default")
        for attempt in range(1, self.max_retries + 1):
            limiter.wait()
            headers = {"Accept": accept} if accept else {}
            if service == "semanticscholar" and self.s2_api_key:
                headers["x-api-key"] = self.s2_api_key
            try:
                resp = self.client.request(method, url, params=params, headers=headers)
                if resp.status_code in self.RETRYABLE_STATUS:
                    raise httpx.HTTPStatusError("Retryable status", request=resp.request, response=resp)
            except httpx.HTTPError as e:
                self.logger.debug("Attempt %d/%d for %s failed: %s", attempt, self.max_retries, url, e)
                if attempt < self.max_retries:
                    time.sleep(backoff)
                    backoff = min(backoff * 2, 8.0)
                continue
            if cache_key and resp.status_code == 200 and "json" in resp.headers.get("Content-Type", ""):
                try:
                    self.cache.set(cache_key, resp.json())
                except (ValueError, OSError) as e:
                    self.logger.debug("Could not cache response for %s: %s", url, e)
            return resp
        raise RuntimeError(f"Network failure after {self.max_retries} attempts for {url}")

    def close(self) -> None:
        self.client.close()


def http_client_from_env(logger: logging.Logger | None = None) -> HttpClient:
    """Build an HttpClient configured from environment variables.

    S2_API_KEY: Semantic Scholar API key
    REF_VERIFIER_CACHE: path of an on-disk response cache
    REF_VERIFIER_MAILTO: contact address for the Crossref polite pool
    REF_VERIFIER_HTTP_TIMEOUT: per-request timeout in seconds
    """
    mailto = os.environ.get("REF_VERIFIER_MAILTO")
    user_agent = f"ReferenceVerifier/0.1 (mailto:{mailto})" if mailto else DEFAULT_USER_AGENT
    s2_api_key = os.environ.get("S2_API_KEY")
    limits = {"semanticscholar": 1000} if s2_api_key else None
    return HttpClient(
        timeout=float(os.environ.get("REF_VERIFIER_HTTP_TIMEOUT", "15")),
        user_agent=user_agent,
        rate_limiter=RateLimiterRegistry(limits),
        cache=DiskCache(os.environ.get("REF_VERIFIER_CACHE")),
        s2_api_key=s2_api_key,
        logger=logger,
    )
