from .api import ApiResponse, GitHubAPI
from .identity import resolve_identity
from .listing import DEFAULT_MAX_PAGES, list_repositories

__all__ = [
    "ApiResponse",
    "GitHubAPI",
    "DEFAULT_MAX_PAGES",
    "list_repositories",
    "resolve_identity",
]
