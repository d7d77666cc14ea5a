from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: Any = None


class GitHubAPI:
    """Thin authenticated GET client for the GitHub REST API.

    Only 2xx bodies are decoded; transport failures surface as
    ``requests.RequestException`` and undecodable bodies as ``ValueError``.
    """

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token must be provided")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": DEFAULT_ACCEPT_HEADER,
                "User-Agent": "gh-backup",
            }
        )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._log = logging.getLogger(self.__class__.__name__)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        url = f"{self._base_url}/{path.lstrip('/')}"
        response = self._session.get(url, params=params, timeout=self._timeout)
        if not 200 <= response.status_code < 300:
            self._log.debug("GitHub API request failed: %s %s", response.status_code, response.text)
            return ApiResponse(status_code=response.status_code)
        return ApiResponse(status_code=response.status_code, body=response.json())

    def close(self) -> None:
        self._session.close()
