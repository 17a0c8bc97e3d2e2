"""Shared HTTP session configuration and error translation."""

from typing import Any, Dict

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from sctoppr.config import USER_AGENT
from sctoppr.errors import TransportError


def create_session(
    max_retries: int = 0,
    backoff_factor: float = 0.5,
    status_forcelist: tuple = (500, 502, 503, 504),
    allowed_methods: tuple = ("POST",),
    user_agent: str = USER_AGENT,
) -> requests.Session:
    """
    Create a requests Session with optional retry logic and JSON headers.

    Args:
        max_retries: Maximum retry attempts (0 disables retries)
        backoff_factor: Backoff multiplier between retries
        status_forcelist: HTTP status codes that trigger retries
        allowed_methods: HTTP methods that can be retried
        user_agent: User-Agent header value

    Returns:
        Configured requests.Session
    """
    session = requests.Session()
    retries = Retry(
        total=max_retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=allowed_methods,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({
        "User-Agent": user_agent,
        "Content-Type": "application/json",
        "Accept": "application/json",
    })
    return session


def post_json(
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    timeout: float,
) -> requests.Response:
    """
    POST a JSON payload and return the successful response.

    Raises:
        TransportError: on connection failure, timeout or a non-2xx status
    """
    try:
        response = session.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
    except requests.Timeout as e:
        raise TransportError(f"Request to {url} timed out after {timeout}s") from e
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else "?"
        raise TransportError(f"ToppGene API returned HTTP {status} for {url}") from e
    except requests.RequestException as e:
        raise TransportError(f"Request to {url} failed: {e}") from e
    return response
