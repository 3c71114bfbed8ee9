"""
errors.py — Service Error Taxonomy
Excel Analytics API

Every error carries the HTTP status it is rendered with; main.py installs a
single handler that turns them into {"message": ...} responses.
"""

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ParseError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Failed to parse spreadsheet file"


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Access denied"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class UpstreamError(AppError):
    default_message = "Upstream service failed"


class StorageError(AppError):
    default_message = "Storage operation failed"
