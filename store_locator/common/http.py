"""HTTP client with retries, timeouts, and host-aware rate limiting."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from types import TracebackType
from typing import Any
from urllib.parse import urlparse

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from store_locator.common.constants import USER_AGENT
from store_locator.common.errors import LocatorError

RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}
RATE_LIMITED_STATUS = 429


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    multiplier: float = 1.0
    max_wait: float = 8.0


class HttpRequestError(LocatorError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableHttpError(HttpRequestError):
    pass


class RateLimitedError(RetryableHttpError):
    error_code = "RATE_LIMITED"


class TokenBucket:
    def __init__(self, rate_per_sec: float, capacity: float | None = None) -> None:
        self.rate_per_sec = rate_per_sec
        self.capacity = capacity if capacity is not None else rate_per_sec
        self.tokens = self.capacity
        self.updated_at = time.monotonic()
        self.lock = threading.Lock()

    def acquire(self, tokens: float = 1.0) -> None:
        while True:
            with self.lock:
                now = time.monotonic()
                elapsed = now - self.updated_at
                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_sec)
                self.updated_at = now
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return
                deficit = tokens - self.tokens
                wait_for = max(deficit / self.rate_per_sec, 0.01)
            time.sleep(wait_for)


class HostRateLimiter:
    def __init__(self, default_rate_per_sec: float) -> None:
        self.default_rate_per_sec = default_rate_per_sec
        self.buckets: dict[str, TokenBucket] = {}
        self.lock = threading.Lock()

    def acquire(self, host: str, tokens: float = 1.0) -> None:
        with self.lock:
            bucket = self.buckets.get(host)
            if bucket is None:
                bucket = TokenBucket(rate_per_sec=self.default_rate_per_sec)
                self.buckets[host] = bucket
        bucket.acquire(tokens=tokens)


class HttpClient:
    """Shared JSON transport for the Airtable and Mapbox adapters.

    Every request goes through one tenacity retry policy: retryable statuses,
    rate limiting (429) and transport failures are retried with exponential
    backoff until ``RetryConfig.max_attempts`` is spent, then re-raised.
    """

    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()
        # Airtable documents 5 requests per second per base.
        self.airtable_limiter = HostRateLimiter(default_rate_per_sec=5.0)
        self.mapbox_limiter = HostRateLimiter(default_rate_per_sec=10.0)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _host(self, url: str) -> str:
        return urlparse(url).netloc

    def _apply_rate_limit(self, url: str, source_type: str) -> None:
        host = self._host(url)
        if source_type == "airtable":
            self.airtable_limiter.acquire(host)
        elif source_type == "mapbox":
            self.mapbox_limiter.acquire(host)

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if headers:
            out.update(headers)
        return out

    def _raise_for_status_or_retry(self, response: requests.Response) -> None:
        status = response.status_code
        if status == RATE_LIMITED_STATUS:
            raise RateLimitedError(f"Rate limited: HTTP {status}", status_code=status)
        if status in RETRYABLE_STATUS_CODES:
            raise RetryableHttpError(f"Retryable HTTP status: {status}", status_code=status)
        if status >= 400:
            raise HttpRequestError(f"HTTP status: {status}", status_code=status)

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        source_type: str,
        params: Any = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        req_timeout = timeout or self.timeout
        self._apply_rate_limit(url, source_type)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=self._headers(headers),
                timeout=(req_timeout.connect, req_timeout.read),
            )
        except requests.RequestException as exc:
            raise RetryableHttpError(f"Transport failure for {self._host(url)}: {exc}") from exc
        self._raise_for_status_or_retry(response)

        try:
            payload = response.json()
        except ValueError as exc:
            raise HttpRequestError(
                f"Invalid JSON payload from {self._host(url)}",
                status_code=response.status_code,
            ) from exc

        return payload

    def request_json(
        self,
        method: str,
        url: str,
        *,
        source_type: str,
        params: Any = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        @retry(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.retry.multiplier,
                max=self.retry.max_wait,
                jitter=self.retry.multiplier,
            ),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )
        def _wrapped() -> dict[str, Any]:
            return self._request_json(
                method,
                url,
                source_type=source_type,
                params=params,
                headers=headers,
                timeout=timeout,
            )

        return _wrapped()

    def get_json(
        self,
        url: str,
        *,
        source_type: str,
        params: Any = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        return self.request_json(
            "GET",
            url,
            source_type=source_type,
            params=params,
            headers=headers,
            timeout=timeout,
        )
