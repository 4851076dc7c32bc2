"""Delivery of envelopes to an ingestion endpoint over HTTP."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from typing import Any, Iterable, Mapping, Optional, Tuple, Union
from urllib.parse import urlsplit

from errbeacon.ratelimit import RateLimiter
from errbeacon.worker import TransportWorker

logger = logging.getLogger(__name__)

Headers = Union[Mapping[str, str], Iterable[Tuple[str, str]]]

_DEFAULT_TIMEOUT = 30.0


def apply_rate_limit_headers(limiter: RateLimiter, headers: Headers) -> None:
    """Record the rate limits announced in response ``headers`` on ``limiter``.

    Header names are matched case-insensitively. ``Retry-After`` is applied
    before ``X-Sentry-Rate-Limits``; when a header repeats, the last value wins.
    """
    pairs = headers.items() if hasattr(headers, "items") else headers
    retry_after: Optional[str] = None
    rate_limits: Optional[str] = None
    for name, value in pairs:
        key = name.strip().lower()
        if key == "retry-after":
            retry_after = value.strip()
        elif key == "x-sentry-rate-limits":
            rate_limits = value.strip()
    if retry_after is not None:
        limiter.update_from_retry_after(retry_after)
    if rate_limits is not None:
        limiter.update_from_sentry_header(rate_limits)


def _envelope_bytes(envelope: Any) -> bytes:
    """Serialize an envelope: bytes pass through, text is UTF-8, else ``to_bytes()``."""
    if isinstance(envelope, (bytes, bytearray, memoryview)):
        return bytes(envelope)
    if isinstance(envelope, str):
        return envelope.encode("utf-8")
    return envelope.to_bytes()


def _choose_proxy(
    scheme: str, http_proxy: Optional[str], https_proxy: Optional[str]
) -> Optional[str]:
    if scheme == "https" and https_proxy:
        return https_proxy
    return http_proxy or None


class HttpTransport:
    """Sends envelopes by POST to ``url`` from a background worker.

    Rate limits reported by the server are honoured: while a global limit is
    in force, queued envelopes are dropped instead of sent.
    """

    def __init__(
        self,
        url: str,
        auth: Optional[str] = None,
        *,
        user_agent: Optional[str] = None,
        http_proxy: Optional[str] = None,
        https_proxy: Optional[str] = None,
        timeout: float = _DEFAULT_TIMEOUT,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        scheme = urlsplit(url).scheme.lower()
        if scheme not in ("http", "https"):
            raise ValueError(f"unsupported URL scheme for transport: {url!r}")
        self._url = url
        self._timeout = timeout
        self._headers = {"Content-Type": "application/json"}
        if auth is not None:
            self._headers["X-Sentry-Auth"] = auth
        if user_agent is not None:
            self._headers["User-Agent"] = user_agent
        proxy = _choose_proxy(scheme, http_proxy, https_proxy)
        proxies = {scheme: proxy} if proxy else {}
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler(proxies))
        self._worker = TransportWorker(self._deliver, limiter=limiter)

    def _deliver(self, envelope: Any, limiter: RateLimiter) -> None:
        request = urllib.request.Request(
            self._url,
            data=_envelope_bytes(envelope),
            headers=self._headers,
            method="POST",
        )
        try:
            with self._opener.open(request, timeout=self._timeout) as response:
                apply_rate_limit_headers(limiter, response.headers)
                text = response.read().decode("utf-8", errors="replace")
                logger.debug("Get response: `%s`", text)
        except urllib.error.HTTPError as err:
            if err.headers is not None:
                apply_rate_limit_headers(limiter, err.headers)
            try:
                text = err.read().decode("utf-8", errors="replace")
                logger.debug("Get response: `%s`", text)
            except OSError as read_err:
                logger.debug("Failed to read sentry response: %s", read_err)
            finally:
                err.close()
        except (urllib.error.URLError, OSError) as err:
            logger.debug("Failed to send envelope: %s", err)

    def send_envelope(self, envelope: Any) -> None:
        """Queue an envelope for delivery."""
        self._worker.send(envelope)

    def flush(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for queued envelopes to be handled."""
        return self._worker.flush(timeout)

    def shutdown(self, timeout: float) -> bool:
        """Flush, then stop the worker; True if everything queued was handled."""
        flushed = self.flush(timeout)
        self._worker.shutdown()
        return flushed