"""Error taxonomy for the chat orchestrator.

Every failure that can end a request is an OrchestratorError subclass
carrying its kind, the HTTP status it maps to, whether the retry
executor may retry it, and any upstream metadata (status code, advised
delay). Raw SDK exceptions are classified exactly once, where they are
first observed, by classify_upstream_error.
"""

import re
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Recognised failure kinds."""
    UPSTREAM_OVERLOADED = "upstream_overloaded"
    UPSTREAM_RATE_LIMITED = "upstream_rate_limited"
    AUTHENTICATION_INVALID = "authentication_invalid"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN_TOOL_REQUESTED = "unknown_tool_requested"
    UNCLASSIFIED_UPSTREAM_FAILURE = "unclassified_upstream_failure"


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors.

    Subclasses set kind, status_code and retryable.
    """

    kind: ErrorKind = ErrorKind.UNCLASSIFIED_UPSTREAM_FAILURE
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        retry_after_seconds: Optional[float] = None,
    ) -> None:
        self.message = message
        self.upstream_status = upstream_status
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)


class UpstreamOverloadedError(OrchestratorError):
    """The model service reported it is overloaded (503)."""

    kind = ErrorKind.UPSTREAM_OVERLOADED
    status_code = 503
    retryable = True


class UpstreamRateLimitedError(OrchestratorError):
    """The model service rate limited the request (429)."""

    kind = ErrorKind.UPSTREAM_RATE_LIMITED
    status_code = 429
    retryable = True


class AuthenticationInvalidError(OrchestratorError):
    """Missing or rejected credentials."""

    kind = ErrorKind.AUTHENTICATION_INVALID
    status_code = 401


class InvalidRequestError(OrchestratorError):
    """Malformed caller input or a payload the upstream refused."""

    kind = ErrorKind.INVALID_REQUEST
    status_code = 400


class UnknownToolError(OrchestratorError):
    """The model asked for a tool that is not registered."""

    kind = ErrorKind.UNKNOWN_TOOL_REQUESTED
    status_code = 500

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown function call: {tool_name}")
        self.tool_name = tool_name


class UnclassifiedUpstreamError(OrchestratorError):
    """Anything that matches no other signature."""


_CODE_IN_MESSAGE = re.compile(r'code"?\s*:\s*(\d{3})')
_RETRY_IN_MESSAGE = re.compile(r"retry in (\d+(?:\.\d+)?)\s*s", re.IGNORECASE)
_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)s?\s*$")


def _upstream_status(exc: Exception) -> Optional[int]:
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value

    match = _CODE_IN_MESSAGE.search(str(exc))
    return int(match.group(1)) if match else None


def _parse_seconds(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        match = _DURATION.match(value)
        if match:
            return float(match.group(1))
    return None


def _advised_delay(exc: Exception) -> Optional[float]:
    """Seconds the upstream asked us to wait, if it said so."""
    headers = getattr(getattr(exc, "response", None), "headers", None)
    if headers is not None:
        try:
            seconds = _parse_seconds(headers.get("retry-after"))
        except AttributeError:
            seconds = None
        if seconds is not None:
            return seconds

    # google.rpc.RetryInfo detail, e.g. {"retryDelay": "2.5s"}
    details = getattr(exc, "details", None)
    body = details.get("error", details) if isinstance(details, dict) else None
    if isinstance(body, dict):
        entries = body.get("details", [])
        for entry in entries if isinstance(entries, list) else []:
            if isinstance(entry, dict) and "retryDelay" in entry:
                seconds = _parse_seconds(entry["retryDelay"])
                if seconds is not None:
                    return seconds

    match = _RETRY_IN_MESSAGE.search(str(exc))
    return float(match.group(1)) if match else None


def classify_upstream_error(exc: Exception) -> OrchestratorError:
    """
    Translate a raw upstream failure into a typed OrchestratorError.

    Already-classified errors are returned unchanged.

    Args:
        exc: Exception raised by the model SDK or transport

    Returns:
        The matching OrchestratorError subclass instance
    """
    if isinstance(exc, OrchestratorError):
        return exc

    status = _upstream_status(exc)
    message = str(exc) or exc.__class__.__name__

    if status == 503:
        return UpstreamOverloadedError(message, upstream_status=status)
    if status == 429:
        return UpstreamRateLimitedError(
            message,
            upstream_status=status,
            retry_after_seconds=_advised_delay(exc),
        )
    if "API_KEY" in message or status in (401, 403):
        return AuthenticationInvalidError(message, upstream_status=status)
    if status == 400:
        return InvalidRequestError(message, upstream_status=status)
    return UnclassifiedUpstreamError(message, upstream_status=status)
