"""
Outbound HTTP transport shared by all provider adapters.

Wraps requests with a per-call timeout, a fixed number of retries on
transport failures (connection errors and timeouts) and JSON decoding. HTTP
error statuses are returned to the caller untouched.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from config import DEFAULT_RETRIES, DEFAULT_TIMEOUT, RETRY_BACKOFF
from utils import format_error, logger

RETRYABLE_EXCEPTIONS = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)


@dataclass
class HttpResponse:
    """
    Uniform result of an HTTP call.

    Attributes:
        status: HTTP status code.
        headers: Response headers (case-insensitive mapping).
        data: Decoded JSON body, or the raw text when the body is not JSON.
        text: Raw body text.
        ok: True for 2xx statuses.
    """
    status: int
    headers: Any = field(default_factory=dict)
    data: Any = None
    text: str = ""
    ok: bool = False
    reason: str = ""

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name) if self.headers else None


class HttpClient:
    """
    Thin retrying wrapper over requests.

    Attributes:
        backoff: Seconds to wait before retry N, multiplied by N.
    """

    def __init__(self, backoff: float = RETRY_BACKOFF):
        self.backoff = backoff
        self._session = requests.Session()

    def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Any = None,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        session: Optional[requests.Session] = None,
        level: int = 0
    ) -> HttpResponse:
        """
        Issue a request, retrying on connection errors and timeouts.

        Args:
            method: HTTP method.
            url: Absolute URL.
            headers: Extra request headers.
            params: Query string parameters.
            json: JSON payload.
            data: Raw body.
            timeout: Per-attempt timeout in seconds.
            retries: Extra attempts after the first transport failure.
            session: Session to send through (adapter cookies, headers).
            level: Logging indentation level.

        Returns:
            HttpResponse for the first attempt that reached the server.

        Raises:
            requests.RequestException: The last transport failure once all
                attempts are exhausted, or any non-transport request error.
        """
        session = session or self._session
        attempts = max(0, retries) + 1

        for attempt in range(1, attempts + 1):
            try:
                response = session.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json,
                    data=data,
                    timeout=timeout
                )
                return self._build_response(response)

            except RETRYABLE_EXCEPTIONS as e:
                if attempt >= attempts:
                    logger(f"✗ {method} {url} failed after {attempts} attempt(s): {format_error(e)}", level=level)
                    raise
                wait_time = self.backoff * attempt
                logger(f"⚠ {method} {url} failed: {format_error(e)}. Retrying in {wait_time:g}s ({attempt}/{attempts - 1})...", level=level)
                if wait_time > 0:
                    time.sleep(wait_time)

        # Unreachable: the loop either returns or raises
        raise requests.exceptions.RetryError(f"{method} {url} exhausted retries")

    def get(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> HttpResponse:
        return self.request("POST", url, **kwargs)

    def close(self) -> None:
        """Close the default session."""
        self._session.close()

    @staticmethod
    def _build_response(response: requests.Response) -> HttpResponse:
        text = response.text or ""
        try:
            body: Any = response.json() if text.strip() else None
        except ValueError:
            body = text

        return HttpResponse(
            status=response.status_code,
            headers=response.headers,
            data=body,
            text=text,
            ok=200 <= response.status_code < 300,
            reason=response.reason or ""
        )


http_client = HttpClient()
