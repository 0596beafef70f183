"""
Data-access layer exceptions.
"""

from typing import Any

from collegemate.types import Response


class CollegeMateError(Exception):
    """Base exception for the data-access layer."""

    pass


class NetworkError(CollegeMateError):
    """No HTTP response was received (connection failure or timeout)."""

    def __init__(self, message: str, *, method: str | None = None, path: str | None = None):
        self.method = method
        self.path = path
        super().__init__(message)


class ProtocolError(CollegeMateError):
    """A successful response was missing a field the client depends on."""

    pass


class HTTPStatusError(CollegeMateError):
    """The server answered with a non-2xx status."""

    default_message = "Request failed"

    def __init__(
        self,
        status: int,
        message: str | None = None,
        body: Any = None,
    ):
        self.status = status
        self.body = body
        self.message = message or self.default_message
        super().__init__(f"HTTP {status}: {self.message}")


class AuthenticationError(HTTPStatusError):
    """Credentials are missing, expired, or could not be refreshed."""

    default_message = "Your session has expired, please log in again"

    def __init__(self, message: str | None = None, body: Any = None, status: int = 401):
        super().__init__(status, message, body)


class AuthorizationError(HTTPStatusError):
    """Authenticated, but not allowed to perform this operation."""

    default_message = "You are not allowed to perform this action"


class NotFoundError(HTTPStatusError):
    """The requested resource does not exist."""

    default_message = "The requested resource was not found"


class ValidationError(HTTPStatusError):
    """The request was rejected, e.g. duplicate username or invalid admin key."""

    default_message = "The request was invalid"

    def __init__(
        self,
        status: int,
        message: str | None = None,
        body: Any = None,
    ):
        super().__init__(status, message, body)
        errors = body.get("errors") if isinstance(body, dict) else None
        self.errors: Any = errors or {}


class ServerError(HTTPStatusError):
    """The server failed to handle the request."""

    default_message = "Something went wrong on the server, please try again later"


def error_for_response(response: Response) -> HTTPStatusError:
    """Map a non-2xx response to the matching exception."""
    status = response.status
    message = response.message
    if status == 401:
        return AuthenticationError(message, response.body)
    if status == 403:
        return AuthorizationError(status, message, response.body)
    if status == 404:
        return NotFoundError(status, message, response.body)
    if status >= 500:
        return ServerError(status, message, response.body)
    return ValidationError(status, message, response.body)


def raise_for_response(response: Response) -> Response:
    """Return ``response`` unchanged if it is 2xx, else raise its error."""
    if response.ok:
        return response
    raise error_for_response(response)
