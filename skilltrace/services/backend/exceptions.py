"""Exceptions for the analysis backend client."""


class BackendAPIError(Exception):
    """Error talking to the analysis backend."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code  # None for connection-level failures
        super().__init__(message)


class MalformedPayloadError(BackendAPIError):
    """Backend answered, but the body isn't what the contract promises."""

    def __init__(self, context: str, detail: str):
        self.context = context
        super().__init__(f"Malformed {context} payload: {detail}")
