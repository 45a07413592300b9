"""Domain errors raised below the routing layer.

Each carries the HTTP status it maps to; ``main.py`` registers one handler
that renders them the same way FastAPI renders ``HTTPException``.
"""


class BackofficeError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class PermissionDenied(BackofficeError):
    status_code = 403


class NotFound(BackofficeError):
    status_code = 404


class ValidationFailed(BackofficeError):
    status_code = 400


class PreconditionFailed(BackofficeError):
    status_code = 400


class ConcurrentUpdate(BackofficeError):
    status_code = 409


class PaymentProviderError(BackofficeError):
    status_code = 502
