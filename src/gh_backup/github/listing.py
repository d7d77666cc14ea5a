from __future__ import annotations

import logging
from typing import List

import requests

from gh_backup.errors import ListError, RepositoryListingError, classify_listing_status
from gh_backup.models import RemoteRepository

from .api import GitHubAPI

LOG = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 999


def list_repositories(
    api: GitHubAPI,
    organization: str,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> List[RemoteRepository]:
    """Collect every repository of ``organization``, page by page.

    Pages are requested in increasing order until one comes back empty or
    ``max_pages`` requests have been made. Any failing page aborts the whole
    listing; no partial result is returned.
    """
    repositories: List[RemoteRepository] = []
    path = f"/orgs/{organization}/repos"

    for page in range(1, max_pages + 1):
        try:
            response = api.get(path, params={"page": page, "type": "all"})
        except (requests.RequestException, ValueError) as exc:
            raise RepositoryListingError(ListError.UNKNOWN, f"Request for page {page} failed: {exc}") from exc

        reason = classify_listing_status(response.status_code)
        if reason is not None:
            LOG.debug("Listing page %s returned HTTP %s", page, response.status_code)
            raise RepositoryListingError(reason)

        if not isinstance(response.body, list):
            raise RepositoryListingError(ListError.UNKNOWN, f"Page {page} is not a list of repositories")

        if not response.body:
            return repositories

        try:
            repositories.extend(RemoteRepository.from_payload(item) for item in response.body)
        except ValueError as exc:
            raise RepositoryListingError(ListError.UNKNOWN, f"Unexpected repository on page {page}: {exc}") from exc

    LOG.warning(
        "Stopped listing %s after %s pages without reaching an empty page",
        organization,
        max_pages,
    )
    return repositories
