"""HTTP client for the fronthaul analysis service."""

import logging
from typing import Any, Dict, Optional

import requests

from config import ANALYZE_PATH, API_BASE_URL, API_RETRIES, API_TIMEOUT_SEC, TUNNEL_BYPASS_HEADER

log = logging.getLogger(__name__)


class AnalysisFetchError(Exception):
    """The analysis payload could not be loaded."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _get_once(session: requests.Session, url: str, timeout: float) -> Dict[str, Any]:
    headers = {"Content-Type": "application/json", **TUNNEL_BYPASS_HEADER}
    try:
        response = session.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        raise AnalysisFetchError(f"Request to {url} failed: {e}") from e

    if not response.ok:
        raise AnalysisFetchError(f"API error: {response.status_code}", response.status_code)
    try:
        return response.json()
    except ValueError as e:
        raise AnalysisFetchError(f"API returned invalid JSON: {e}", response.status_code) from e


def fetch_analysis(base_url: str = API_BASE_URL,
                   session: Optional[requests.Session] = None,
                   retries: int = API_RETRIES,
                   timeout: float = API_TIMEOUT_SEC) -> Dict[str, Any]:
    """
    GET {base_url}/analyze and return the decoded JSON body.

    Any failure is retried up to `retries` times before the last
    `AnalysisFetchError` is raised.
    """
    url = base_url.rstrip("/") + ANALYZE_PATH
    if session is None:
        with requests.Session() as own_session:
            return _fetch_with_retries(own_session, url, retries, timeout)
    return _fetch_with_retries(session, url, retries, timeout)


def _fetch_with_retries(session: requests.Session, url: str, retries: int, timeout: float) -> Dict[str, Any]:
    last_error = None

    for attempt in range(retries + 1):
        log.info("Fetching analysis from %s (attempt %d/%d)", url, attempt + 1, retries + 1)
        try:
            payload = _get_once(session, url, timeout)
        except AnalysisFetchError as e:
            log.warning("Analysis fetch failed: %s", e)
            last_error = e
            continue
        log.info("Analysis payload received (%d top-level sections)", len(payload) if isinstance(payload, dict) else 0)
        return payload

    raise last_error
