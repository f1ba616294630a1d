"""Domain exceptions translated to HTTP errors by the error handler middleware."""


class AppException(Exception):
    """Base class. Subclasses fix the status code and a default message."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class BadRequestException(AppException):
    status_code = 400
    default_message = "Bad request"


class UnauthorizedException(AppException):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenException(AppException):
    status_code = 403
    default_message = "Forbidden"


class NotFoundException(AppException):
    status_code = 404
    default_message = "Resource not found"


class ConflictException(AppException):
    """Double booking, duplicate phone or tag, illegal state transition."""

    status_code = 409
    default_message = "Conflict"


class GoneException(AppException):
    """An expired or already used consent link."""

    status_code = 410
    default_message = "Resource is no longer available"


class ValidationException(AppException):
    status_code = 422
    default_message = "Validation error"


class RateLimitException(AppException):
    status_code = 429
    default_message = "Rate limit exceeded"


class ExternalServiceException(AppException):
    """Stripe, AiSensy or the AI provider rejected or failed a request."""

    status_code = 502
    default_message = "External service error"

    def __init__(self, provider: str, message: str | None = None):
        self.provider = provider
        super().__init__(message)


class ServiceUnavailableException(AppException):
    """An integration the request needs has no credentials configured."""

    status_code = 503
    default_message = "Service unavailable"


class ServiceTimeoutException(AppException):
    status_code = 504
    default_message = "Upstream service timed out"
