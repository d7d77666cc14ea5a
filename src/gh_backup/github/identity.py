from __future__ import annotations

import logging

import requests

from gh_backup.errors import IdentityError, IdentityResolutionError, classify_identity_status
from gh_backup.models import AuthenticatedUser

from .api import GitHubAPI

LOG = logging.getLogger(__name__)


def resolve_identity(api: GitHubAPI) -> AuthenticatedUser:
    """Return the user owning the API token. One request, no retries."""
    try:
        response = api.get("/user")
    except (requests.RequestException, ValueError) as exc:
        raise IdentityResolutionError(IdentityError.UNKNOWN, f"Request for /user failed: {exc}") from exc

    reason = classify_identity_status(response.status_code)
    if reason is not None:
        LOG.debug("/user returned HTTP %s", response.status_code)
        raise IdentityResolutionError(reason)

    try:
        return AuthenticatedUser.from_payload(response.body)
    except ValueError as exc:
        raise IdentityResolutionError(IdentityError.UNKNOWN, f"Unexpected /user payload: {exc}") from exc
