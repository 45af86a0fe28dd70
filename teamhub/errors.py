"""Error kinds raised by the service layer.

Every service operation either returns a value or raises exactly one of these.
`detail` is a stable snake_case code for clients, `message` is the human text.
The API maps each class to its HTTP status.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    status_code = 500
    default_detail = "internal_error"
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail or self.default_detail
        super().__init__(self.message)


class Unauthenticated(ServiceError):
    status_code = 401
    default_detail = "unauthorized"
    default_message = "Unauthorized"


class Forbidden(ServiceError):
    status_code = 403
    default_detail = "forbidden"
    default_message = "Forbidden"


class ValidationError(ServiceError):
    status_code = 400
    default_detail = "validation_error"
    default_message = "Invalid request."


class NotFound(ServiceError):
    status_code = 404
    default_detail = "not_found"
    default_message = "Not found."


class Conflict(ServiceError):
    status_code = 409
    default_detail = "conflict"
    default_message = "Conflict."


class Internal(ServiceError):
    pass
