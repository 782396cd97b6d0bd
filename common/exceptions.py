"""Base error type for domain services.

Services raise subclasses of ``ServiceError``; views catch them and render a
structured failure body via ``error_response``.
"""

from rest_framework import status
from rest_framework.response import Response


class ServiceError(Exception):
    """A domain failure with a stable machine-readable code."""

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Unable to complete the request."

    def __init__(self, message: str | None = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


def failure_body(exc: ServiceError) -> tuple[dict, int]:
    body = {"success": False, "detail": exc.message, "code": exc.code}
    if exc.details:
        body.update(exc.details)
    return body, exc.status_code


def error_response(exc: ServiceError) -> Response:
    body, code = failure_body(exc)
    return Response(body, status=code)
