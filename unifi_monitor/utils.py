"""Helper utilities.

This module centralises the HTTP plumbing: the plain session used for the
notification sinks, the browser-impersonating session used against the
storefront, and the retry policy applied to rate-limited webhook calls.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import requests
from curl_cffi import requests as curl_requests
from tenacity import (Retrying, after_log, retry_if_result,
                      stop_after_attempt, wait_fixed)


logger = logging.getLogger(__name__)

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

# Header set a Chrome tab sends for same-origin XHR on the storefront.
_STEALTH_HEADERS = {
    "sec-ch-ua": '"Chromium";v="124", "Google Chrome";v="124", "Not-A.Brand";v="99"',
    "rtt": "50",
    "sec-ch-ua-mobile": "?0",
    "user-agent": CHROME_UA,
    "accept": "*/*",
    "x-requested-with": "XMLHttpRequest",
    "downlink": "3.9",
    "ect": "4g",
    "sec-ch-ua-platform": '"Windows"',
    "sec-fetch-site": "same-origin",
    "sec-fetch-mode": "cors",
    "sec-fetch-dest": "empty",
    "content-type": "application/json; charset=UTF-8",
    "accept-language": "en,en_US;q=0.9",
}


def get_http_session() -> requests.Session:
    """Return a new HTTP session for outbound notification sinks.

    Caller is responsible for closing the session.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": "Mozilla/5.0 (compatible; UnifiStoreMonitor/1.0; +https://github.com/)",
            "Accept": "application/json",
        }
    )
    # Respect environment proxies if configured (requests does this by default)
    return session


def get_stealth_session(impersonate: str = "chrome") -> curl_requests.Session:
    """Return a curl_cffi session that mimics Chrome's TLS/HTTP2 fingerprint.

    The storefront sits behind bot protection that rejects plain
    python-requests handshakes, so every storefront call goes through this.
    """
    return curl_requests.Session(impersonate=impersonate, headers=dict(_STEALTH_HEADERS))


class HTTPError(Exception):
    """Raised when an outbound HTTP call fails or returns an unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _is_rate_limited(resp: Any) -> bool:
    return getattr(resp, "status_code", None) == 429


def rate_limit_retrying(
    max_attempts: int = 3,
    wait_seconds: float = 5.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """Build a retry policy for calls that may answer HTTP 429.

    The wrapped call returns a response; it is re-issued while the status is
    429, at most *max_attempts* times in total, with a fixed pause between
    attempts.  The last response is returned either way so the caller can
    decide what a persistent 429 means.
    """
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(wait_seconds),
        retry=retry_if_result(_is_rate_limited),
        retry_error_callback=lambda state: state.outcome.result(),
        after=after_log(logger, logging.WARNING),
        sleep=sleep,
    )


__all__ = [
    "CHROME_UA",
    "HTTPError",
    "get_http_session",
    "get_stealth_session",
    "rate_limit_retrying",
]
