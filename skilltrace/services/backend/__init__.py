"""
Analysis backend client package.

Usage: `from skilltrace.services.backend import BackendClient, repo_key_from_url`

Module structure:
- client.py: BackendClient, one method per backend endpoint
- http_client.py: Shared httpx.AsyncClient lifecycle
- helpers.py: Repository keys, error-response handling, SSE decoding
- cache.py: TTL caches for commit listings and history timestamps
- types.py: Data types for backend responses
- exceptions.py: Custom exceptions
"""

from skilltrace.services.backend.cache import clear_backend_caches, get_cache_stats
from skilltrace.services.backend.client import BackendClient
from skilltrace.services.backend.exceptions import BackendAPIError, MalformedPayloadError
from skilltrace.services.backend.helpers import (
    handle_error_response,
    repo_key_from_url,
    same_repository,
)
from skilltrace.services.backend.http_client import close_backend_client, get_backend_client
from skilltrace.services.backend.types import AnalysisStart, CommitHistory

__all__ = [
    "BackendClient",
    "close_backend_client",
    "get_backend_client",
    "clear_backend_caches",
    "get_cache_stats",
    "handle_error_response",
    "repo_key_from_url",
    "same_repository",
    "BackendAPIError",
    "MalformedPayloadError",
    "AnalysisStart",
    "CommitHistory",
]
