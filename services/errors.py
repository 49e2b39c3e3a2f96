"""
Service-layer error taxonomy.

Routes translate these into JSON error bodies with the carried HTTP status.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None, **details):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        body = {"success": False, "error": self.message}
        body.update(self.details)
        return body


class AuthError(ServiceError):
    status_code = 401


class PermissionDenied(ServiceError):
    status_code = 403


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class UpstreamError(ServiceError):
    """Stripe, storage or mail provider failure."""
    status_code = 502
