"""Core custom exceptions and error classification for the teaser workflow."""

from enum import Enum


class ErrorKind(str, Enum):
    """Classified cause of a failed operation."""

    VALIDATION = "ValidationError"
    UNREACHABLE = "UnreachableError"
    NOT_FOUND = "NotFoundError"
    NETWORK = "NetworkError"
    PROTOCOL = "ProtocolError"
    SERVER = "ServerError"
    REJECTED = "RejectedError"
    PARSE = "ParseError"
    EMPTY_BATCH = "EmptyBatchError"
    BUSY = "BusyError"
    MISSING_SESSION = "MissingSessionError"
    CANCELLED = "CancelledError"


class TeaserflowError(Exception):
    """Base exception for all workflow errors."""

    kind: ErrorKind = ErrorKind.SERVER

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        # Kept for logging only; never shown to the user.
        self.status_code = status_code


class ApiError(TeaserflowError):
    """Base exception for failed calls to the remote teaser service."""


class ValidationError(ApiError):
    """Input rejected by local checks or by the service (422-equivalent)."""

    kind = ErrorKind.VALIDATION


class UnreachableError(ApiError):
    """The company website could not be fetched by the service."""

    kind = ErrorKind.UNREACHABLE


class NotFoundError(ApiError):
    """The requested resource does not exist (404-equivalent)."""

    kind = ErrorKind.NOT_FOUND


class NetworkError(ApiError):
    """Transport failure before a response was received."""

    kind = ErrorKind.NETWORK


class ProtocolError(ApiError):
    """The service answered, but not in the expected shape."""

    kind = ErrorKind.PROTOCOL


class ServerError(ApiError):
    """Generic failure on the service side (5xx-equivalent)."""

    kind = ErrorKind.SERVER


class RejectedError(ApiError):
    """The service declined uploaded content."""

    kind = ErrorKind.REJECTED


class ParseError(ApiError):
    """A success response body could not be parsed."""

    kind = ErrorKind.PARSE


class UnknownSessionError(ApiError):
    """The service no longer recognises the session a call depended on."""

    kind = ErrorKind.MISSING_SESSION


class EmptyBatchError(TeaserflowError):
    """Upload requested with no queued files."""

    kind = ErrorKind.EMPTY_BATCH


class BusyError(TeaserflowError):
    """Another mutating request is already in flight."""

    kind = ErrorKind.BUSY


class MissingSessionError(TeaserflowError):
    """A step that needs a confirmed company session was entered without one."""

    kind = ErrorKind.MISSING_SESSION


_INPUT_KINDS = {ErrorKind.VALIDATION, ErrorKind.REJECTED, ErrorKind.EMPTY_BATCH}
_REACH_KINDS = {ErrorKind.NETWORK, ErrorKind.UNREACHABLE, ErrorKind.NOT_FOUND}

_DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.VALIDATION: "Please check the highlighted input and try again.",
    ErrorKind.REJECTED: "The server rejected the upload. Try different files.",
    ErrorKind.EMPTY_BATCH: "Add at least one file before uploading.",
    ErrorKind.NETWORK: "We couldn't reach the server. Please check your connection and try again.",
    ErrorKind.UNREACHABLE: "The website is invalid or unreachable. Please check the company homepage and try again.",
    ErrorKind.NOT_FOUND: "The requested document was not found.",
    ErrorKind.PROTOCOL: "The server sent an unexpected response.",
    ErrorKind.PARSE: "Could not parse the server response.",
    ErrorKind.SERVER: "Something went wrong on our side. Please try again later.",
    ErrorKind.BUSY: "Another request is still in progress.",
    ErrorKind.MISSING_SESSION: "Missing session: please go back and confirm the company details first.",
    ErrorKind.CANCELLED: "The request was cancelled.",
}


def audience(kind: ErrorKind) -> str:
    """Returns who the failure is attributed to: 'input', 'connectivity' or 'server'."""
    if kind in _INPUT_KINDS:
        return "input"
    if kind in _REACH_KINDS:
        return "connectivity"
    return "server"


def user_message(kind: ErrorKind, detail: str | None = None) -> str:
    """Builds a concise, human-readable message for a classified failure.

    Protocol errors keep the detail verbatim to aid diagnosis; for the other
    kinds the detail is shown only when it is short and free of transport codes.
    """
    default = _DEFAULT_MESSAGES.get(kind, _DEFAULT_MESSAGES[ErrorKind.SERVER])
    if not detail:
        return default
    if kind in (ErrorKind.PROTOCOL, ErrorKind.PARSE):
        return f"{default} {detail}"
    if audience(kind) == "input" and len(detail) < 300:
        return detail
    return default
