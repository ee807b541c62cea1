"""Exceptions raised by the v3 client."""

from __future__ import annotations

BODY_SNIPPET_LIMIT = 200

_GUIDANCE = {
    401: "Session token expired. Import a fresh token_v2 and retry.",
    403: "Access denied. The token may not have access to this resource, or it may have expired.",
    404: "Not found. Check the ID, or ensure the page is accessible with this session.",
    429: "Rate limited. Wait a moment and retry.",
}


class V3Error(Exception):
    """Base class for every v3 client failure."""
    pass


class RequestTimeout(V3Error):
    """The call did not complete before its deadline and was aborted."""

    def __init__(self, endpoint: str, timeout: float) -> None:
        self.endpoint = endpoint
        self.timeout = timeout
        super().__init__(f"v3 request to {endpoint} timed out after {timeout:g}s")


class ProtocolError(V3Error):
    """Non-2xx response from a v3 endpoint."""

    def __init__(self, status: int, endpoint: str, body: str = "", reason: str = "") -> None:
        self.status = status
        self.endpoint = endpoint
        self.body_snippet = (body or "")[:BODY_SNIPPET_LIMIT]
        message = f"v3 API error: {status}"
        if reason:
            message += f" {reason}"
        message += f" on {endpoint}"
        if self.body_snippet:
            message += f": {self.body_snippet}"
        super().__init__(message)

    @property
    def guidance(self) -> str:
        return _GUIDANCE.get(self.status, f"v3 API error ({self.status} on {self.endpoint})")


class ConfigError(V3Error):
    """Credentials or settings are missing or unreadable."""
    pass


class ModelNotFound(V3Error):
    """Requested AI model matches no available codename or display name."""

    def __init__(self, requested: str) -> None:
        self.requested = requested
        super().__init__(f'Unknown model "{requested}". List the available models to see valid codenames.')
