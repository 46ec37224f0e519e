"""JSON-over-HTTP transport shared by the provider adapters."""

from __future__ import annotations

import json
import time
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from gift_finder.errors import ProviderError, ProviderRateLimitError

_RETRYABLE_STATUS = {408, 409, 500, 502, 503, 504}


def _retry_after_seconds(exc: urllib.error.HTTPError) -> float | None:
    raw = exc.headers.get("Retry-After") if exc.headers else None
    if not raw:
        return None
    try:
        value = float(raw)
    except Exception:
        return None
    return value if value >= 0 else None


def request_json(
    url: str,
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    payload: dict[str, Any] | None = None,
    timeout_seconds: float = 30.0,
    max_retries: int = 1,
) -> Any:
    """Send a request and decode the JSON body.

    Transient failures (network errors, 408/409/5xx) are retried with
    exponential backoff. HTTP 429 is raised immediately as
    ``ProviderRateLimitError`` so the caller decides how long to wait.
    """
    if params:
        query = urllib.parse.urlencode({k: v for k, v in params.items() if v is not None})
        url = f"{url}?{query}"

    body = json.dumps(payload).encode("utf-8") if payload is not None else None
    request_headers = {"Accept": "application/json"}
    if body is not None:
        request_headers["Content-Type"] = "application/json"
    request_headers.update(headers or {})

    request = urllib.request.Request(url, data=body, headers=request_headers, method=method)
    safe_timeout = max(1.0, float(timeout_seconds))
    retries = max(0, int(max_retries))

    last_error: Exception | None = None
    for attempt in range(retries + 1):
        try:
            with urllib.request.urlopen(request, timeout=safe_timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as exc:
            response_body = exc.read().decode("utf-8", errors="ignore")
            if exc.code == 429:
                raise ProviderRateLimitError(
                    f"Rate limited at {urllib.parse.urlsplit(url).path}",
                    retry_after=_retry_after_seconds(exc),
                ) from exc
            if exc.code in _RETRYABLE_STATUS and attempt < retries:
                time.sleep(0.4 * (2**attempt))
                continue
            raise ProviderError(
                f"Request failed ({exc.code}) at {urllib.parse.urlsplit(url).path}: {response_body or exc.reason}"
            ) from exc
        except urllib.error.URLError as exc:
            last_error = exc
            if attempt < retries:
                time.sleep(0.4 * (2**attempt))
                continue
            raise ProviderError(f"Request failed at {urllib.parse.urlsplit(url).path}: {exc.reason}") from exc
        except json.JSONDecodeError as exc:
            raise ProviderError(f"Invalid JSON from {urllib.parse.urlsplit(url).path}") from exc

    raise ProviderError(f"Request failed: {last_error}")
