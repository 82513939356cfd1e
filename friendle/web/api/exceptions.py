"""HTTP-facing errors raised by the storage API.

Each carries the status code and error type the app-level exception handler
renders into an ``ErrorResponse``.
"""

from __future__ import annotations


class APIError(Exception):
    """Base class for errors that map directly to an HTTP status."""

    status_code = 500
    error_type = "api_error"

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class SignatureInvalidError(APIError):
    """Signature header missing (401) or not matching the body (403)."""

    status_code = 403
    error_type = "signature_error"


class UnauthorizedError(APIError):
    """Bearer credential missing or wrong."""

    status_code = 401
    error_type = "unauthorized"


class MalformedPayloadError(APIError):
    """Body or query is not usable: bad JSON or missing required fields."""

    status_code = 400
    error_type = "bad_request"


class StorageUnavailableError(APIError):
    """The service is not configured to accept the request."""

    status_code = 500
    error_type = "configuration_error"
