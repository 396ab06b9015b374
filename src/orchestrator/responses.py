"""Map terminal failures to user-facing status and message."""

from pydantic import BaseModel

from shared.errors import ErrorKind, classify_upstream_error

USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.UPSTREAM_OVERLOADED: (
        "The service is very busy right now. We retried several times without success. "
        "Please try again in a little while."
    ),
    ErrorKind.UPSTREAM_RATE_LIMITED: (
        "The API usage limit (quota) has been exceeded. Please wait a few minutes and try again."
    ),
    ErrorKind.AUTHENTICATION_INVALID: (
        "There is a problem with the credentials. Please check the API key configuration."
    ),
    ErrorKind.INVALID_REQUEST: (
        "An invalid request was sent. The application may have a problem."
    ),
    ErrorKind.UNKNOWN_TOOL_REQUESTED: (
        "The assistant tried to use a tool that is not available."
    ),
    ErrorKind.UNCLASSIFIED_UPSTREAM_FAILURE: (
        "A server error occurred. Check the server logs for details."
    ),
}


class ErrorResponse(BaseModel):
    """User-facing failure."""
    status_code: int
    kind: ErrorKind
    message: str


def map_error(exc: Exception) -> ErrorResponse:
    """
    Translate a terminal failure into a status and message.

    Unclassified exceptions are classified first.
    """
    error = classify_upstream_error(exc)
    return ErrorResponse(
        status_code=error.status_code,
        kind=error.kind,
        message=USER_MESSAGES[error.kind],
    )
