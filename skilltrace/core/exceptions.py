from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Raised when request validation fails."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message,
        )


class NoRepositorySelectedError(HTTPException):
    """Raised when an endpoint needs an active repository and none is selected."""

    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="No repository selected. POST /api/v1/analysis/select first.",
        )


class BackendUnavailableError(HTTPException):
    """Raised when the analysis backend call behind an endpoint fails."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=message,
        )
