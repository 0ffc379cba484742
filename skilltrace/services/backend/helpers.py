"""
Analysis backend helper utilities.

Repository key derivation, centralised error-response handling, and the
server-sent-event line decoder used by the analysis stream.
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import httpx

from skilltrace.services.backend.exceptions import BackendAPIError, MalformedPayloadError

logger = logging.getLogger(__name__)

# `GET /analyze` answers 202 for a freshly created job and 409 when one is
# already running for the repository. Both mean "a job exists, follow it".
ANALYSIS_ACCEPTED_STATUSES = frozenset({200, 202, 409})
ANALYSIS_ALREADY_RUNNING = 409


def repo_key_from_url(url: str) -> str:
    """
    Derive the repository key from a repository URL.

    The key is the last path segment with any `.git` suffix removed, e.g.
    `https://github.com/octocat/hello-world.git` -> `hello-world`. It is the
    only identifier the backend uses to correlate status queries and snapshots.

    Raises:
        ValueError: if the URL yields an empty key
    """
    cleaned = url.strip().rstrip("/")
    cleaned = cleaned.removesuffix(".git")
    key = cleaned.split("/")[-1]
    if not key:
        raise ValueError(f"Cannot derive a repository key from {url!r}")
    return key


def same_repository(embedded: str | None, repo_key: str) -> bool:
    """Check whether an identifier embedded in a message belongs to `repo_key`.

    Messages carry either the full repository URL or the bare key; anything
    missing or unparseable counts as a mismatch.
    """
    if not embedded:
        return False
    try:
        return repo_key_from_url(embedded) == repo_key
    except ValueError:
        return False


def handle_error_response(response: httpx.Response, context: str) -> None:
    """
    Raise BackendAPIError for any non-2xx backend response.

    The backend's JSON `error`/`message` field, when present, is surfaced
    verbatim since it ends up in the user-visible status line.

    Args:
        response: The httpx Response to check
        context: Short description of the call (for error messages)
    """
    if response.is_success:
        return

    detail = None
    try:
        body = response.json()
        if isinstance(body, dict):
            detail = body.get("error") or body.get("message") or body.get("error_message")
    except ValueError:
        pass

    status_code = response.status_code
    if detail:
        message = str(detail)
    elif status_code == 404:
        message = f"{context}: not found"
    elif status_code >= 500:
        message = f"{context}: backend error ({status_code})"
    else:
        message = f"{context}: unexpected status {status_code}"

    logger.warning(f"Backend call failed ({context}): {status_code} {message}")
    raise BackendAPIError(message, status_code)


def decode_json_object(raw: str, context: str) -> dict[str, Any]:
    """Parse a JSON object, raising MalformedPayloadError otherwise."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedPayloadError(context, str(e)) from e
    if not isinstance(data, dict):
        raise MalformedPayloadError(context, f"expected object, got {type(data).__name__}")
    return data


async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """
    Decode a server-sent-event line stream into event `data` payloads.

    Multi-line `data:` fields are joined with newlines; comment lines
    (`: keepalive`) and fields other than `data` are ignored. An event is
    dispatched on the blank line that terminates it, or at end of stream.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if field == "data":
            data_lines.append(value.removeprefix(" "))

    if data_lines:
        yield "\n".join(data_lines)
