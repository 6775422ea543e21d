"""Requests-based HTTP client shared by adapters and the robots checker.

Features:
- session reuse + connection pooling
- explicit timeout on every call
- transport errors and non-2xx statuses surfaced as NetworkFailure
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from .errors import NetworkFailure, ParseFailure

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin wrapper over ``requests.Session`` with a fixed User-Agent and timeout."""

    def __init__(
        self,
        *,
        user_agent: str | None = None,
        timeout_s: float = 10.0,
        session: requests.Session | None = None,
        pool_connections: int = 10,
        pool_maxsize: int = 20,
    ) -> None:
        self.timeout_s = timeout_s
        self._session = session or requests.Session()

        if session is None:
            adapter = requests.adapters.HTTPAdapter(
                pool_connections=pool_connections,
                pool_maxsize=pool_maxsize,
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

        if user_agent:
            self._session.headers["User-Agent"] = user_agent

    def close(self) -> None:
        self._session.close()

    def get(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        timeout_s: float | None = None,
    ) -> requests.Response:
        """
        Issue a GET and return the response, raising on any failure.

        Raises:
            NetworkFailure: timeout, DNS/connection error or non-2xx status
        """
        timeout = timeout_s or self.timeout_s
        try:
            response = self._session.get(url, headers=headers, params=params, timeout=timeout)
        except requests.Timeout as e:
            raise NetworkFailure(f"Timeout after {timeout}s fetching {url}") from e
        except requests.RequestException as e:
            raise NetworkFailure(f"Request to {url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise NetworkFailure(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
            )
        return response

    def get_text(self, url: str, **kwargs: Any) -> str:
        """GET a page and return its decoded body."""
        return self.get(url, **kwargs).text

    def get_json(self, url: str, **kwargs: Any) -> Any:
        """
        GET a JSON document.

        Raises:
            NetworkFailure: see ``get``
            ParseFailure: body is not valid JSON
        """
        response = self.get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ParseFailure(f"Malformed JSON body from {url}") from e
