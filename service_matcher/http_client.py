"""HTTP transport shared by the enrichment adapters and connection tests."""

import base64
import time
from typing import Any, Dict, Optional

import requests

from .logging_utils import logger

DEFAULT_TIMEOUT = 30.0


def basic_auth_headers(username: str, password: str) -> Dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}", "Accept": "application/json"}


def bearer_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}", "Accept": "application/json"}


def api_request_with_retry(
    method: str,
    url: str,
    *,
    session: Optional[requests.Session] = None,
    max_retries: int = 3,
    initial_backoff: float = 1.0,
    max_backoff: float = 60.0,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs
) -> requests.Response:
    """
    Make an API request with automatic retry and exponential backoff.

    Handles:
    - Rate limiting (429 status code)
    - Transient network errors
    - Server errors (5xx)

    Returns the response (4xx included) or raises the last exception.
    """
    method = method.upper()
    if method not in ("GET", "POST"):
        raise ValueError(f"Unsupported HTTP method: {method}")

    http = session or requests
    last_exception: Optional[Exception] = None

    for attempt in range(max_retries):
        try:
            response = http.request(method, url, timeout=timeout, **kwargs)

            rate_limit_remaining = response.headers.get("X-RateLimit-Remaining")
            if rate_limit_remaining:
                try:
                    remaining = int(rate_limit_remaining)
                    if remaining < 10:
                        logger.warn("rate_limit_low", remaining=remaining, url=url[:100])
                        time.sleep(1.0 if remaining < 5 else 0.5)
                except (ValueError, TypeError):
                    pass

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                if retry_after:
                    try:
                        wait_time = float(retry_after)
                    except ValueError:
                        wait_time = initial_backoff * (2 ** attempt)
                else:
                    wait_time = min(initial_backoff * (2 ** attempt), max_backoff)

                if attempt < max_retries - 1:
                    logger.warn("rate_limit_hit", wait_seconds=wait_time, attempt=attempt + 1, url=url[:100])
                    time.sleep(wait_time)
                    continue
                response.raise_for_status()

            if 500 <= response.status_code < 600:
                if attempt < max_retries - 1:
                    wait_time = min(initial_backoff * (2 ** attempt), max_backoff)
                    logger.warn(
                        "server_error_retry",
                        status=response.status_code,
                        wait_seconds=wait_time,
                        attempt=attempt + 1,
                        url=url[:100],
                    )
                    time.sleep(wait_time)
                    continue
                response.raise_for_status()

            return response

        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            last_exception = e
            if attempt < max_retries - 1:
                wait_time = min(initial_backoff * (2 ** attempt), max_backoff)
                logger.warn("network_error_retry", error=str(e), wait_seconds=wait_time, attempt=attempt + 1, url=url[:100])
                time.sleep(wait_time)
                continue
            raise

    if last_exception:
        raise last_exception
    raise RuntimeError("API request failed after retries")


def get_json(url: str, *, session: Optional[requests.Session] = None, headers: Optional[Dict[str, str]] = None, **kwargs) -> Any:
    """GET ``url`` and decode JSON.

    Raises ``requests.HTTPError`` for non-2xx responses and ``ValueError``
    when the body is not JSON.
    """
    response = api_request_with_retry("GET", url, session=session, headers=headers, **kwargs)
    response.raise_for_status()
    return response.json()


def safe_json(resp: requests.Response) -> Any:
    """Decode a JSON body; an empty body is ``{}`` and non-JSON text lands under ``_raw``."""
    try:
        return resp.json() if resp.content else {}
    except ValueError:
        return {"_raw": resp.text}
