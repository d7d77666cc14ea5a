from __future__ import annotations

from enum import Enum
from typing import Optional


class IdentityError(Enum):
    FORBIDDEN = "Access forbidden."
    SERVER_ERROR = "Server error."
    UNKNOWN = "Unknown error."


class ListError(Enum):
    ORGANISATION_NOT_FOUND = "Organisation not found."
    FORBIDDEN = "Access forbidden."
    SERVER_ERROR = "Server error."
    UNKNOWN = "Unknown error."


class TransferError(Enum):
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    LOCAL_FILESYSTEM = "local-filesystem"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class IdentityResolutionError(Exception):
    """Raised when the authenticated user cannot be resolved."""

    def __init__(self, reason: IdentityError, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason


class RepositoryListingError(Exception):
    """Raised when the organization's repositories cannot be listed."""

    def __init__(self, reason: ListError, detail: str = "") -> None:
        super().__init__(detail or reason.value)
        self.reason = reason


class RepositoryBackupError(Exception):
    """Raised when a single repository transfer fails."""

    def __init__(self, reason: TransferError, message: str) -> None:
        super().__init__(message)
        self.reason = reason


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _is_server_error(status: int) -> bool:
    return 500 <= status < 600


def classify_identity_status(status: int) -> Optional[IdentityError]:
    if _is_success(status):
        return None
    if status == 403:
        return IdentityError.FORBIDDEN
    if _is_server_error(status):
        return IdentityError.SERVER_ERROR
    return IdentityError.UNKNOWN


def classify_listing_status(status: int) -> Optional[ListError]:
    if _is_success(status):
        return None
    if status == 404:
        return ListError.ORGANISATION_NOT_FOUND
    if status == 403:
        return ListError.FORBIDDEN
    if _is_server_error(status):
        return ListError.SERVER_ERROR
    return ListError.UNKNOWN


_AUTHENTICATION_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "invalid username or password",
    "requested url returned error: 401",
    "requested url returned error: 403",
    "permission to",
)

_NETWORK_MARKERS = (
    "could not resolve host",
    "failed to connect",
    "connection timed out",
    "connection refused",
    "connection reset",
    "operation timed out",
    "early eof",
    "rpc failed",
    "the remote end hung up",
    "ssl",
    "gnutls",
    "requested url returned error: 5",
)

_FILESYSTEM_MARKERS = (
    "not a git repository",
    "already exists and is not an empty directory",
    "permission denied",
    "no space left on device",
    "read-only file system",
    "could not create",
    "unable to create",
    "unable to write",
    "cannot lock ref",
)


def classify_git_failure(stderr: str) -> TransferError:
    """Map the stderr of a failed git invocation to a transfer error."""
    text = stderr.lower()
    if any(marker in text for marker in _AUTHENTICATION_MARKERS):
        return TransferError.AUTHENTICATION
    if any(marker in text for marker in _NETWORK_MARKERS):
        return TransferError.NETWORK
    if any(marker in text for marker in _FILESYSTEM_MARKERS):
        return TransferError.LOCAL_FILESYSTEM
    return TransferError.UNKNOWN
