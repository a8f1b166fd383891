"""Caller-facing errors.

Raised from dependencies and services; FastAPI renders them as
``{"detail": message}`` with the matching status code.
"""

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, headers: dict[str, str] | None = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message, headers=headers)

    @property
    def message(self) -> str:
        return str(self.detail)


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "No token, authorization denied"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class RateLimitedError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please wait and try again."


class UpstreamFormatError(AppError):
    """The text-generation backend answered with content we could not parse."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "AI returned an unexpected format. Please try again."


class ServiceUnavailableError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "AI service is temporarily busy. Please try again in 30 seconds."
