"""
Domain errors for the request scheduler and the GitHub traversal.
Zero external dependencies: pure Python exception classes only.

FetchError subclasses are the conditions reported to an IErrorSink; every one
of them is fatal for the ApiAgent that produced it. EmptyQueueError and
DuplicateSequenceError are programming errors and are never reported.
"""

import json
from enum import Enum
from typing import Optional

# Responses with these codes are assumed to carry a JSON object with
# 'message' and 'documentation_url'.
DOCUMENTED_ERROR_CODES = (401, 403, 404)


class EmptyQueueError(IndexError):
    """pop() was called on an empty PriorityQueue."""


class DuplicateSequenceError(RuntimeError):
    """Two queued items compared equal: sequence numbers must be unique."""


class ApiTransportError(Exception):
    """The transport could not obtain any HTTP response (DNS, connection, timeout)."""


class ApiErrorKind(str, Enum):
    TRANSPORT = "transport"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    HTTP = "http"
    INVALID_RESPONSE = "invalid_response"


_KIND_BY_STATUS = {
    401: ApiErrorKind.UNAUTHORIZED,
    403: ApiErrorKind.FORBIDDEN,
    404: ApiErrorKind.NOT_FOUND,
}


class FetchError(Exception):
    """Base class for fatal conditions surfaced through the error sink.

    Attributes:
        message:  User-facing description, ready to print as-is.
        endpoint: Path-relative endpoint of the request that failed.
    """

    def __init__(self, message: str, endpoint: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint


class ApiError(FetchError):
    """An upstream request failed: network failure or an error status."""

    def __init__(
        self,
        message: str,
        kind: ApiErrorKind,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        api_message: Optional[str] = None,
        documentation_url: Optional[str] = None,
    ) -> None:
        super().__init__(message, endpoint)
        self.kind = kind
        self.status_code = status_code
        self.api_message = api_message
        self.documentation_url = documentation_url

    @classmethod
    def from_status(cls, status_code: int, body: str, endpoint: Optional[str] = None) -> "ApiError":
        """Build the error for an HTTP error response.

        The body is parsed best-effort for the documented codes only; a body
        that is not the expected JSON object leaves the generic message.
        """
        message = f"{status_code} Error"
        api_message = None
        documentation_url = None
        if status_code in DOCUMENTED_ERROR_CODES:
            try:
                payload = json.loads(body)
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                api_message = payload.get("message")
                documentation_url = payload.get("documentation_url")
                message += "\n\nHere's more information from GitHub:\n"
                message += f"{api_message}\n{documentation_url}"
        return cls(
            message,
            kind=_KIND_BY_STATUS.get(status_code, ApiErrorKind.HTTP),
            endpoint=endpoint,
            status_code=status_code,
            api_message=api_message,
            documentation_url=documentation_url,
        )

    @classmethod
    def from_transport(cls, exc: Exception, endpoint: Optional[str] = None) -> "ApiError":
        return cls(f"Network Error\n\n{exc}", kind=ApiErrorKind.TRANSPORT, endpoint=endpoint)

    @classmethod
    def invalid_response(cls, status_code: int, endpoint: Optional[str] = None) -> "ApiError":
        return cls(
            f"{status_code} Error\n\nThe response body is not valid JSON.",
            kind=ApiErrorKind.INVALID_RESPONSE,
            endpoint=endpoint,
            status_code=status_code,
        )


class ContinuationError(FetchError):
    """A response continuation raised; the original exception is the __cause__."""

    def __init__(self, endpoint: str, cause: BaseException) -> None:
        super().__init__(
            f"Internal Error\n\nHandling the response of {endpoint} failed: {cause!r}",
            endpoint,
        )
